"""Authorization rules — role gates and the severity escalation rule.

Pure functions: they read an Identity and the values involved and either
return None or raise. Callers compose them; nothing here touches state.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from bugtracker.errors import EscalationForbidden, Forbidden
from bugtracker.models.enums import Role, Severity
from bugtracker.models.identity import Identity

logger = logging.getLogger(__name__)

# Role sets per gated operation
ALL_ROLES: frozenset[Role] = frozenset(Role)
ADMIN_ONLY: frozenset[Role] = frozenset({Role.ADMIN})


def require_role(identity: Identity, allowed: Iterable[Role]) -> None:
    """Raise Forbidden unless the caller's role is one of ``allowed``."""
    allowed_set = frozenset(allowed)
    if identity.role not in allowed_set:
        logger.warning(
            "Access denied: user %s with role %s attempted forbidden access (allowed=%s)",
            identity.id,
            identity.role.value,
            sorted(r.value for r in allowed_set),
        )
        raise Forbidden()


def is_escalation(current: Severity, incoming: Severity | None) -> bool:
    """True when ``incoming`` moves a report *to* critical from something else."""
    return incoming == Severity.CRITICAL and incoming != current


def check_severity_escalation(identity: Identity, current: Severity, incoming: Severity | None) -> None:
    """Only admins may transition a report to critical.

    Re-submitting critical on an already critical report is not a
    transition and passes for every role.
    """
    if is_escalation(current, incoming) and identity.role != Role.ADMIN:
        logger.warning(
            "Escalation denied: user %s (role=%s) tried %s -> critical",
            identity.id,
            identity.role.value,
            current.value,
        )
        raise EscalationForbidden()
