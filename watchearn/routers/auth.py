from fastapi import APIRouter, Depends, status

from watchearn.container import Container
from watchearn.deps import get_container
from watchearn.services.commands import (
    ForgotPasswordCommand,
    LoginCommand,
    RegisterCommand,
    ResetPasswordCommand,
)

router = APIRouter()


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(body: RegisterCommand, container: Container = Depends(get_container)):
    """Create an account (optionally referred) and return a bearer token."""
    session = await container.accounts.register(body)
    return session.as_dict()


@router.post("/login")
async def login(body: LoginCommand, container: Container = Depends(get_container)):
    session = await container.accounts.authenticate(body.email, body.password)
    return session.as_dict()


@router.post("/forgot-password")
async def forgot_password(body: ForgotPasswordCommand, container: Container = Depends(get_container)):
    """Always the same answer, registered or not."""
    await container.accounts.forgot_password(body.email)
    return {"message": "If the email is registered, a reset link has been sent."}


@router.post("/reset-password")
async def reset_password(body: ResetPasswordCommand, container: Container = Depends(get_container)):
    await container.accounts.reset_password(body.token, body.new_password)
    return {"message": "Password has been reset."}
