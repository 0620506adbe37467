"""Fixed provider endpoints, identifiers, and timeouts.

The manager talks to exactly one OAuth provider with one registered
redirect URI, so none of these are user-configurable. The only
configurable endpoint is the usage base URL stored in
:attr:`~codex_accounts.models.AppData.limits_base_url`.
"""

OAUTH_CLIENT_ID = "app_EMoamEEZ73f0CkXaXp7hrann"
OAUTH_ISSUER = "https://auth.openai.com"
OAUTH_AUTHORIZE_URL = f"{OAUTH_ISSUER}/oauth/authorize"
OAUTH_TOKEN_URL = f"{OAUTH_ISSUER}/oauth/token"
OAUTH_SCOPE = "openid profile email offline_access"
OAUTH_ORIGINATOR = "codex_cli_rs"

CALLBACK_HOST = "127.0.0.1"
CALLBACK_PORT = 1455
CALLBACK_PATH = "/auth/callback"
OAUTH_REDIRECT_URI = f"http://localhost:{CALLBACK_PORT}{CALLBACK_PATH}"

DEFAULT_LIMITS_BASE_URL = "https://chatgpt.com/backend-api"
BACKEND_API_MARKER = "/backend-api"

IDENTITY_AUTH_CLAIM = "https://api.openai.com/auth"
ACCOUNT_ID_HEADER = "ChatGPT-Account-Id"
USER_AGENT = "codex-cli"

TOKEN_EXCHANGE_TIMEOUT = 45.0
QUOTA_TIMEOUT = 30.0
PROXY_PROBE_TIMEOUT = 4.0
# Idle connections to the callback listener are dropped after this many seconds.
CALLBACK_READ_TIMEOUT = 10.0
LOCK_TIMEOUT = 10.0

# Remote bodies echoed into error messages are cut to this many characters.
ERROR_EXCERPT_LIMIT = 240
