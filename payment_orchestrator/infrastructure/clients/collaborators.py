"""Bundle of collaborator adapters handed to the payment saga"""

from dataclasses import dataclass, field

from payment_orchestrator.infrastructure.clients.identity import IdentityClient
from payment_orchestrator.infrastructure.clients.ledger import LedgerClient
from payment_orchestrator.infrastructure.clients.loyalty import LoyaltyClient
from payment_orchestrator.infrastructure.clients.notification import NotificationClient
from payment_orchestrator.infrastructure.clients.qr import QRClient
from payment_orchestrator.infrastructure.clients.settlement import SettlementClient


@dataclass
class Collaborators:
    identity: IdentityClient = field(default_factory=IdentityClient)
    settlement: SettlementClient = field(default_factory=SettlementClient)
    loyalty: LoyaltyClient = field(default_factory=LoyaltyClient)
    ledger: LedgerClient = field(default_factory=LedgerClient)
    qr: QRClient = field(default_factory=QRClient)
    notification: NotificationClient = field(default_factory=NotificationClient)
