from dataclasses import dataclass

from starlette.requests import Request

UNKNOWN_IP = "0.0.0.0"


@dataclass(frozen=True)
class ClientInfo:
    """Network origin of a request, recorded on sessions and audit events."""

    ip_address: str = UNKNOWN_IP
    user_agent: str = ""


def client_info_from_request(request: Request) -> ClientInfo:
    # First X-Forwarded-For hop is the original client behind the proxy
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for and forwarded_for.split(",")[0].strip():
        ip_address = forwarded_for.split(",")[0].strip()
    elif request.client and request.client.host:
        ip_address = request.client.host
    else:
        ip_address = UNKNOWN_IP
    return ClientInfo(
        ip_address=ip_address[:45],
        user_agent=request.headers.get("user-agent", ""),
    )
