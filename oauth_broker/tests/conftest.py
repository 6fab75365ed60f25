"""
Pytest configuration for oauth_broker. Must run before oauth_broker.config is imported:
in-memory SQLite audit DB, in-process KV store, fixed cookie secret, allow-list and registered clients.
"""
import json
import os

os.environ["BROKER_DATABASE_URL"] = "sqlite:///:memory:"
os.environ["BROKER_KV_URL"] = "memory://"
os.environ["COOKIE_ENCRYPTION_KEY"] = "test-cookie-secret"
os.environ["GITHUB_ALLOWED_LOGINS"] = "octocat"
os.environ["GITHUB_CLIENT_ID"] = "gh-client"
os.environ["GITHUB_CLIENT_SECRET"] = "gh-secret"
os.environ["BROKER_CLIENTS"] = json.dumps({
    "mcp-client": ["https://client.example/cb"],
    "audit-client": ["https://c.example/cb"],
})
for var in ("BROKER_PUBLIC_URL", "BROKER_AUTHORIZE_PATH", "BROKER_CALLBACK_PATH"):
    os.environ.pop(var, None)
