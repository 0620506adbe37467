"""Login: PKCE, identity claims, flow bookkeeping, and the callback listener."""
