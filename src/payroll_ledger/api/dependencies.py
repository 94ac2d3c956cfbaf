"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.services.payroll_service import PayrollService


def get_payroll_service(request: Request) -> PayrollService:
    """Return the facade bound to the running application."""
    return request.app.state.payroll


async def get_db_session(
    service: Annotated[PayrollService, Depends(get_payroll_service)],
) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with service.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_actor_id(
    x_user_id: Annotated[str | None, Header()] = None
) -> int:
    """Extract the acting user id from header."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-ID header is required",
        )
    try:
        return int(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-User-ID format",
        )


# Type aliases for cleaner dependency injection
Payroll = Annotated[PayrollService, Depends(get_payroll_service)]
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
ActorId = Annotated[int, Depends(get_actor_id)]
