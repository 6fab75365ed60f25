"""
OAuth broker configuration. All values from env; no secrets in this file.
GITHUB_* settings describe the upstream identity provider, BROKER_* settings the broker itself.
"""
import os
import secrets

from oauth_broker.provider import parse_registered_clients
from oauth_broker.upstream import parse_allowed_logins

# Public base URL of the broker (optional). When unset, the callback URL is derived from the request URL.
PUBLIC_URL = os.environ.get("BROKER_PUBLIC_URL", "").strip().rstrip("/") or None

# Paths of the HTTP surface
AUTHORIZE_PATH = os.environ.get("BROKER_AUTHORIZE_PATH", "/authorize")
CALLBACK_PATH = os.environ.get("BROKER_CALLBACK_PATH", "/callback")

# Upstream OAuth app credentials (GitHub)
GITHUB_CLIENT_ID = os.environ.get("GITHUB_CLIENT_ID", "")
GITHUB_CLIENT_SECRET = os.environ.get("GITHUB_CLIENT_SECRET", "")

# Comma-separated, case-insensitive logins allowed to complete authorization. Unset = nobody.
ALLOWED_LOGINS = parse_allowed_logins(os.environ.get("GITHUB_ALLOWED_LOGINS"))

# Registered broker clients: JSON object of client_id -> list of exact redirect URIs (http or https).
# Unset = no client can authorize.
REGISTERED_CLIENTS = parse_registered_clients(os.environ.get("BROKER_CLIENTS"))

# HMAC key for the approved-clients cookie. Rotating it revokes every stored approval.
# When unset, a random key is used for this process only (approvals do not survive restarts).
COOKIE_KEY_EPHEMERAL = not os.environ.get("COOKIE_ENCRYPTION_KEY")
COOKIE_ENCRYPTION_KEY = os.environ.get("COOKIE_ENCRYPTION_KEY") or secrets.token_hex(32)

UPSTREAM_AUTHORIZE_URL = os.environ.get("UPSTREAM_AUTHORIZE_URL", "https://github.com/login/oauth/authorize")
UPSTREAM_TOKEN_URL = os.environ.get("UPSTREAM_TOKEN_URL", "https://github.com/login/oauth/access_token")
UPSTREAM_USER_URL = os.environ.get("UPSTREAM_USER_URL", "https://api.github.com/user")
UPSTREAM_SCOPE = os.environ.get("UPSTREAM_SCOPE", "read:user user:email")
UPSTREAM_TIMEOUT_SECONDS = float(os.environ.get("UPSTREAM_TIMEOUT_SECONDS", "10.0"))

# Key/value store for pending authorization state and minted grants.
# redis://... for deployments; memory:// keeps everything in this process (dev and tests only).
KV_URL = os.environ.get("BROKER_KV_URL", "redis://127.0.0.1:6379/0")

# Pending authorization state lifetime (seconds); also the session-binding cookie Max-Age
STATE_TTL_SECONDS = 600

# Lifetime of the authorization code minted on completion (seconds)
GRANT_TTL_SECONDS = int(os.environ.get("BROKER_GRANT_TTL_SECONDS", "600"))

# SQLite audit DB for development
DATABASE_URL = os.environ.get("BROKER_DATABASE_URL", "sqlite:///./oauth_broker.db")
