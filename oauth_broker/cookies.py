"""
Cookie helpers. All broker cookies are __Host- prefixed: HttpOnly, Secure, Path=/, no Domain.
"""
from starlette.requests import cookie_parser


def read_cookie(cookie_header: str | None, name: str) -> str | None:
    """Value of cookie `name` in a raw Cookie header, or None if absent."""
    if not cookie_header:
        return None
    return cookie_parser(cookie_header).get(name)


def host_cookie(name: str, value: str, *, same_site: str, max_age: int | None = None) -> str:
    """Set-Cookie value for a host-locked cookie. No max_age = session cookie."""
    parts = [f"{name}={value}", "HttpOnly", "Secure", f"SameSite={same_site}", "Path=/"]
    if max_age is not None:
        parts.append(f"Max-Age={max_age}")
    return "; ".join(parts)
