"""Wires settings and collaborators into services once per process."""

from dataclasses import dataclass

from watchearn.core.clock import Clock, utcnow
from watchearn.core.config import Settings
from watchearn.core.security import TokenSigner
from watchearn.db.base import Datastore, get_datastore
from watchearn.services.accounts import AccountService
from watchearn.services.catalog import CatalogService
from watchearn.services.entitlements import EntitlementService
from watchearn.services.ledger import LedgerService
from watchearn.services.notifier import Notifier, get_notifier
from watchearn.services.reconciliation import ReconciliationService
from watchearn.services.referrals import ReferralService
from watchearn.storage.base import get_storage
from watchearn.storage.media import MediaStore


@dataclass
class Container:
    settings: Settings
    datastore: Datastore
    media: MediaStore
    notifier: Notifier
    clock: Clock
    signer: TokenSigner
    ledger: LedgerService
    referrals: ReferralService
    entitlements: EntitlementService
    reconciliation: ReconciliationService
    accounts: AccountService
    catalog: CatalogService


def build_container(
    settings: Settings,
    datastore: Datastore | None = None,
    media: MediaStore | None = None,
    notifier: Notifier | None = None,
    clock: Clock = utcnow,
) -> Container:
    """Collaborators not passed in are built from settings."""
    datastore = datastore or get_datastore(settings)
    media = media or MediaStore(get_storage(settings), settings.max_upload_bytes)
    notifier = notifier or get_notifier(settings)
    signer = TokenSigner(settings)

    ledger = LedgerService(datastore, clock)
    referrals = ReferralService(datastore, ledger, settings)
    entitlements = EntitlementService(datastore, ledger, referrals, settings, clock)
    reconciliation = ReconciliationService(datastore, ledger, notifier, settings, clock)
    accounts = AccountService(datastore, ledger, referrals, notifier, media, signer, settings, clock)
    catalog = CatalogService(datastore, media)
    return Container(
        settings=settings,
        datastore=datastore,
        media=media,
        notifier=notifier,
        clock=clock,
        signer=signer,
        ledger=ledger,
        referrals=referrals,
        entitlements=entitlements,
        reconciliation=reconciliation,
        accounts=accounts,
        catalog=catalog,
    )
