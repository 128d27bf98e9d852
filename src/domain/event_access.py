"""
Event access domain service - codes for collaborators without accounts.

Access codes are 6 digits so they can be read aloud or typed by hand;
the 7-day window makes up for the small keyspace. Whether a code survives
its first redemption is an explicit policy (AuthPolicy.access_code_single_use):
by default it does, so a collaborator can re-enter the same dashboard from
another device until the code expires.

Admin tokens are standing capabilities: anyone holding the URL administers
the event. They never expire.
"""

import logging
from dataclasses import dataclass, field

from .credentials import TokenIssuer, validate_email
from .exceptions import InvalidOrExpired
from .identity import require_collaborators
from .messages import deliver, event_access_message
from .models import AccessCodeIssued, AdminTokenGrant, EventAccessGrant
from .policy import AuthPolicy
from .ports import CredentialKind, Notifier, PersistenceGateway

logger = logging.getLogger(__name__)

ACCESS_CODE_LENGTH = 6


@dataclass
class EventAccessService:
    """Issues and checks per-event collaborator credentials."""

    gateway: PersistenceGateway
    notifier: Notifier
    policy: AuthPolicy = field(default_factory=AuthPolicy)

    def __post_init__(self) -> None:
        require_collaborators(self, gateway=self.gateway, notifier=self.notifier)

    def issue_access_code(self, event_id: str, email: str) -> AccessCodeIssued:
        """
        Create a code bound to (event, email) and email it.

        Raises:
            ValidationError: malformed email address
            InvalidOrExpired: no such event
        """
        email = validate_email(email)
        event = self.gateway.get_event(event_id)
        if event is None:
            raise InvalidOrExpired("Event not found")

        code = TokenIssuer.numeric_code(ACCESS_CODE_LENGTH)
        credential = self.gateway.issue_credential(
            CredentialKind.EVENT_ACCESS,
            code,
            self.policy.access_code_ttl,
            event_id=event.id,
            email=email,
        )
        logger.info("Access code issued for event %s", event.id)

        message = event_access_message(
            email.split("@")[0],
            event.title,
            code,
            self.policy.link(f"a/{event.admin_token}"),
        )
        return AccessCodeIssued(
            access_code=code,
            expires_at=credential.expires_at,
            warning=deliver(self.notifier, email, message),
        )

    def redeem_access_code(self, event_id: str, code: str) -> EventAccessGrant:
        """
        Check an access code for an event.

        Raises:
            InvalidOrExpired: no matching unexpired code, or no such event
        """
        code = code.strip()
        if self.policy.access_code_single_use:
            credential = self.gateway.consume_credential(
                CredentialKind.EVENT_ACCESS, code, event_id=event_id
            )
        else:
            credential = self.gateway.find_valid_credential(
                CredentialKind.EVENT_ACCESS, code, event_id=event_id
            )
        if credential is None:
            logger.warning("Access code rejected for event %s", event_id)
            raise InvalidOrExpired("Invalid or expired access code")

        event = self.gateway.get_event(event_id)
        if event is None:
            raise InvalidOrExpired("Invalid or expired access code")

        return EventAccessGrant(
            event_id=event.id,
            event_title=event.title,
            admin_token=event.admin_token,
            access_code=code,
            expires_at=credential.expires_at,
        )

    def validate_admin_token(self, admin_token: str) -> AdminTokenGrant | None:
        """Resolve an admin token to its event. Unknown token -> None."""
        if not admin_token:
            return None
        event = self.gateway.find_event_by_admin_token(admin_token)
        if event is None:
            return None
        return AdminTokenGrant(
            event_id=event.id,
            is_owned_by_registered_admin=event.created_by_account_id is not None,
        )
