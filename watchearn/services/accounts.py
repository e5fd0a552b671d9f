"""Registration, login, bearer tokens, profile and admin account management."""

from dataclasses import dataclass
from datetime import timedelta

from watchearn.core.audit import log_event
from watchearn.core.clock import Clock
from watchearn.core.config import Settings
from watchearn.core.exceptions import ConflictError, ForbiddenError, NotFoundError, UnauthorizedError, ValidationError
from watchearn.core.logging import get_logger
from watchearn.core.pagination import paginate
from watchearn.core.security import (
    TokenSigner,
    authorize,
    ensure_admin,
    generate_referral_code,
    generate_reset_token,
    hash_password,
    hash_reset_token,
    verify_password,
)
from watchearn.db.base import Datastore, UnitOfWork
from watchearn.models import Account, EntryKind
from watchearn.services.commands import ProfileUpdateCommand, RegisterCommand
from watchearn.services.entitlements import plan_state
from watchearn.services.ledger import LedgerService
from watchearn.services.notifier import Notifier, notify_safely
from watchearn.services.referrals import ReferralService
from watchearn.storage.media import MediaStore

log = get_logger(__name__)


@dataclass
class AccountView:
    account: Account
    plan_state: str
    referrer_username: str | None = None

    def as_dict(self) -> dict:
        data = self.account.public()
        data["plan_state"] = self.plan_state
        data["referrer_username"] = self.referrer_username
        return data


@dataclass
class Session:
    account: Account
    token: str

    def as_dict(self) -> dict:
        return {"token": self.token, "token_type": "bearer", "account": self.account.public()}


class AccountService:
    def __init__(
        self,
        datastore: Datastore,
        ledger: LedgerService,
        referrals: ReferralService,
        notifier: Notifier,
        media: MediaStore,
        signer: TokenSigner,
        settings: Settings,
        clock: Clock,
    ) -> None:
        self.datastore = datastore
        self.ledger = ledger
        self.referrals = referrals
        self.notifier = notifier
        self.media = media
        self.signer = signer
        self.settings = settings
        self.clock = clock

    def _issue(self, account: Account) -> str:
        return self.signer.issue({"account_id": account.id, "session_version": account.session_version})

    async def _unique_referral_code(self, uow: UnitOfWork) -> str:
        for _ in range(10):
            code = generate_referral_code()
            if not await uow.accounts.find_one(referral_code=code):
                return code
        raise ConflictError("Could not generate unique referral code")

    async def register(self, cmd: RegisterCommand) -> Session:
        """New account with exactly one signup bonus entry; welcome email is best-effort."""
        email = cmd.email.lower()

        async def _create(uow: UnitOfWork) -> Account:
            if await uow.accounts.find_one(email=email):
                raise ConflictError("Email already registered", details={"field": "email"})
            if await uow.accounts.find_one(username=cmd.username):
                raise ConflictError("Username already taken", details={"field": "username"})
            referrer = await self.referrals.resolve_referrer(uow, cmd.referral_code)
            account = Account(
                username=cmd.username,
                email=email,
                password_hash=hash_password(cmd.password),
                referral_code=await self._unique_referral_code(uow),
                referred_by=referrer.id if referrer else None,
                created_at=self.clock(),
            )
            await uow.accounts.insert(account)
            if self.settings.signup_bonus > 0:
                await self.ledger.post_entry(
                    uow, account, self.settings.signup_bonus, EntryKind.SIGNUP_BONUS, "Welcome bonus"
                )
            await log_event(uow, account.id, "account_registered", "account", account.id, {"referred_by": account.referred_by})
            return account

        account = await self.datastore.run(_create)
        log.info("account_registered", account_id=account.id, referred=account.referred_by is not None)
        await notify_safely(
            self.notifier,
            account.email,
            "welcome",
            {
                "username": account.username,
                "bonus": str(self.settings.signup_bonus),
                "currency": self.settings.currency,
                "referral_code": account.referral_code,
            },
        )
        return Session(account=account, token=self._issue(account))

    async def authenticate(self, email: str, password: str) -> Session:
        async def _read(uow: UnitOfWork) -> Account | None:
            return await uow.accounts.find_one(email=email.strip().lower())

        account = await self.datastore.run(_read)
        if not account or not verify_password(password, account.password_hash):
            log.info("login_failed", email=email)
            raise UnauthorizedError("Invalid email or password")
        if account.is_blocked:
            raise ForbiddenError("Account is blocked")
        log.info("login", account_id=account.id)
        return Session(account=account, token=self._issue(account))

    async def identity_from_token(self, token: str | None) -> Account:
        if not token:
            raise UnauthorizedError("Not authenticated")
        payload = self.signer.load(token)
        if not payload or not payload.get("account_id"):
            raise UnauthorizedError("Invalid or expired token")

        async def _read(uow: UnitOfWork) -> Account | None:
            return await uow.accounts.get(payload["account_id"])

        account = await self.datastore.run(_read)
        if not account:
            raise UnauthorizedError("Account not found")
        if payload.get("session_version") != account.session_version:
            raise UnauthorizedError("Session invalidated")
        if account.is_blocked:
            raise ForbiddenError("Account is blocked")
        return account

    def authorize(self, account: Account) -> bool:
        return authorize(account)

    async def account_view(self, account_id: str) -> AccountView:
        async def _read(uow: UnitOfWork) -> AccountView:
            account = await uow.accounts.get(account_id)
            if not account:
                raise NotFoundError("Account not found")
            referrer = await uow.accounts.get(account.referred_by) if account.referred_by else None
            return AccountView(
                account=account,
                plan_state=plan_state(account, self.clock()).value,
                referrer_username=referrer.username if referrer else None,
            )

        return await self.datastore.run(_read)

    async def update_profile(self, account_id: str, cmd: ProfileUpdateCommand) -> Session:
        """Changing the password invalidates previously issued tokens; a fresh one is returned."""

        async def _update(uow: UnitOfWork) -> Account:
            account = await uow.accounts.get(account_id)
            if not account:
                raise NotFoundError("Account not found")
            if cmd.username:
                account.username = cmd.username.strip()
            if cmd.email:
                account.email = cmd.email.lower()
            if cmd.password:
                account.password_hash = hash_password(cmd.password)
                account.session_version += 1
            # unique username/email clashes surface as ConflictError from save
            await uow.accounts.save(account)
            return account

        account = await self.datastore.run(_update)
        log.info("profile_updated", account_id=account.id)
        return Session(account=account, token=self._issue(account))

    async def upload_avatar(self, account_id: str, data: bytes, filename: str, content_type: str | None) -> str:
        stored = await self.media.store(data, "avatars", "image", filename, content_type)

        async def _update(uow: UnitOfWork) -> None:
            account = await uow.accounts.get(account_id)
            if not account:
                raise NotFoundError("Account not found")
            account.avatar_url = stored.url
            await uow.accounts.save(account)

        try:
            await self.datastore.run(_update)
        except Exception:
            await self.media.remove(stored.key)
            raise
        log.info("avatar_updated", account_id=account_id, key=stored.key)
        return stored.url

    async def forgot_password(self, email: str) -> None:
        """Same outcome whether or not the email is registered."""
        token = generate_reset_token()
        now = self.clock()

        async def _issue(uow: UnitOfWork) -> Account | None:
            account = await uow.accounts.find_one(email=email.strip().lower())
            if not account or account.is_blocked:
                return None
            account.password_reset_token_hash = hash_reset_token(token)
            account.password_reset_expires_at = now + timedelta(seconds=self.settings.password_reset_max_age_seconds)
            await uow.accounts.save(account)
            return account

        account = await self.datastore.run(_issue)
        if account is None:
            log.info("password_reset_unknown_email")
            return
        reset_url = f"{self.settings.frontend_url.rstrip('/')}/reset-password?token={token}"
        await notify_safely(
            self.notifier,
            account.email,
            "password_reset",
            {
                "username": account.username,
                "reset_url": reset_url,
                "expires_minutes": self.settings.password_reset_max_age_seconds // 60,
            },
        )
        log.info("password_reset_requested", account_id=account.id)

    async def reset_password(self, token: str, new_password: str) -> None:
        token_hash = hash_reset_token(token)

        async def _reset(uow: UnitOfWork) -> Account:
            account = await uow.accounts.find_one(password_reset_token_hash=token_hash)
            now = self.clock()
            if (
                not account
                or account.password_reset_expires_at is None
                or account.password_reset_expires_at <= now
            ):
                raise ValidationError("Invalid or expired token")
            account.password_hash = hash_password(new_password)
            account.password_reset_token_hash = None
            account.password_reset_expires_at = None
            account.session_version += 1
            await uow.accounts.save(account)
            return account

        account = await self.datastore.run(_reset)
        log.info("password_reset", account_id=account.id)

    # -- admin --

    async def list_accounts(
        self,
        is_blocked: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Account], int]:
        limit, offset = paginate(limit, offset)
        filters = {} if is_blocked is None else {"is_blocked": is_blocked}

        async def _read(uow: UnitOfWork) -> tuple[list[Account], int]:
            items = await uow.accounts.find(sort="-created_at", limit=limit, offset=offset, **filters)
            return items, await uow.accounts.count(**filters)

        return await self.datastore.run(_read)

    async def set_blocked(self, admin: Account, account_id: str, is_blocked: bool) -> Account:
        ensure_admin(admin)
        if admin.id == account_id and is_blocked:
            raise ValidationError("Admins cannot block themselves")

        async def _update(uow: UnitOfWork) -> Account:
            account = await uow.accounts.get(account_id)
            if not account:
                raise NotFoundError("Account not found")
            account.is_blocked = is_blocked
            await uow.accounts.save(account)
            await log_event(
                uow,
                admin.id,
                "account_blocked" if is_blocked else "account_unblocked",
                "account",
                account.id,
            )
            return account

        account = await self.datastore.run(_update)
        log.info("account_block_changed", account_id=account_id, is_blocked=is_blocked, admin_id=admin.id)
        return account

    async def ensure_bootstrap_admin(self) -> Account | None:
        """Create the configured admin on first start. Needs email, username and password set."""
        s = self.settings
        if not (s.admin_email and s.admin_username and s.admin_password):
            return None
        email = s.admin_email.lower()

        async def _ensure(uow: UnitOfWork) -> tuple[Account, bool]:
            existing = await uow.accounts.find_one(email=email)
            if existing:
                return existing, False
            account = Account(
                username=s.admin_username,
                email=email,
                password_hash=hash_password(s.admin_password),
                referral_code=await self._unique_referral_code(uow),
                is_admin=True,
            )
            await uow.accounts.insert(account)
            await log_event(uow, None, "admin_bootstrapped", "account", account.id)
            return account, True

        account, created = await self.datastore.run(_ensure)
        if created:
            log.info("admin_bootstrapped", account_id=account.id)
        elif not account.is_admin:
            log.warning("bootstrap_admin_email_taken", account_id=account.id)
        return account
