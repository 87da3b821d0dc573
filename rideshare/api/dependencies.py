"""FastAPI dependency injection helpers."""

from typing import Optional

from fastapi import Header, HTTPException, Request

from rideshare.services.marketplace import RideMarketplace


def get_marketplace(request: Request) -> RideMarketplace:
    """The façade built by ``create_app`` and stored on the application state."""
    return request.app.state.marketplace


async def get_account_id(
    x_account_id: Optional[str] = Header(
        None, description="Opaque account id issued by the identity provider."
    ),
) -> str:
    """Caller identity; authentication itself happens upstream."""
    if not x_account_id or not x_account_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-Account-Id header")
    return x_account_id.strip()
