"""Policy-checked resolver chain."""

import copy
import json
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

import structlog

from olang.exceptions import PolicyViolation, ResolverConfigurationError
from olang.lang.parser import DEFAULT_MATH_RESOLVER
from olang.lang.steps import Diagnostic, Workflow
from olang.runtime.mathexpr import is_math_call
from resolvers.base import Resolver, as_resolver

logger = structlog.get_logger(__name__)


@dataclass
class DisallowedAttempt:
    """A refused resolver invocation."""
    resolver: str
    action: str
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    workflow: Optional[str] = None


class DisallowedAttemptLog:
    """Audit trail of policy violations.

    Entries are kept in memory and, when ``path`` is set, appended to that
    file as JSON lines.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path) if path else None
        self.entries: List[DisallowedAttempt] = []

    def record(self, resolver: str, action: str, workflow: Optional[str] = None) -> DisallowedAttempt:
        entry = DisallowedAttempt(resolver=resolver, action=action, workflow=workflow)
        self.entries.append(entry)

        if self.path:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(asdict(entry)) + "\n")
            except OSError as e:
                logger.error("disallowed_log_write_failed", path=str(self.path), error=str(e))

        logger.warning(
            "resolver_disallowed",
            resolver=resolver,
            action=action,
            workflow=workflow,
        )
        return entry

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)


class ResolverChain:
    """Ordered resolvers tried until one returns a value.

    Every resolver is checked against the allow-list before it runs. A
    resolver outside the list is logged to the audit trail and raises
    :class:`PolicyViolation`. Exceptions from allowed resolvers are recorded
    in ``warnings`` and the next resolver is tried.
    """

    def __init__(
        self,
        resolvers: Iterable[Any] = (),
        allowed: Optional[Iterable[str]] = None,
        audit_log: Optional[DisallowedAttemptLog] = None,
        math_resolver_name: str = DEFAULT_MATH_RESOLVER,
        workflow_name: Optional[str] = None,
    ):
        self.resolvers: List[Resolver] = [as_resolver(r) for r in resolvers]
        for position, resolver in enumerate(self.resolvers):
            if not resolver.name:
                raise ResolverConfigurationError(
                    f"Resolver at position {position} ({resolver!r}) has no name"
                )

        self.allowed: List[str] = []
        for name in allowed or ():
            self.grant(name)

        self.audit_log = audit_log if audit_log is not None else DisallowedAttemptLog()
        self.math_resolver_name = math_resolver_name
        self.workflow_name = workflow_name
        self.warnings: List[Diagnostic] = []
        self.stats: Dict[str, Any] = {
            "invocations": 0,
            "unresolved": 0,
            "failures": 0,
            "by_resolver": defaultdict(int),
        }

    @classmethod
    def for_workflow(
        cls,
        workflow: Workflow,
        resolvers: Iterable[Any] = (),
        **kwargs,
    ) -> "ResolverChain":
        """Chain bound to the workflow's declared allow-list."""
        kwargs.setdefault("workflow_name", workflow.name)
        return cls(resolvers, allowed=workflow.allowed_resolvers, **kwargs)

    def bind(self, allowed: Iterable[str], workflow_name: Optional[str] = None) -> "ResolverChain":
        """Per-execution view with its own allow-list and warnings.

        Resolvers, the audit log and stats are shared with this chain, so
        concurrent runs on one chain never see each other's grants.
        """
        bound = copy.copy(self)
        bound.allowed = []
        for name in allowed:
            bound.grant(name)
        bound.workflow_name = workflow_name
        bound.warnings = []
        return bound

    @property
    def names(self) -> List[str]:
        return [r.name for r in self.resolvers]

    @property
    def disallowed_attempts(self) -> List[DisallowedAttempt]:
        return self.audit_log.entries

    def is_allowed(self, name: str) -> bool:
        return name in self.allowed

    def grant(self, name: str) -> None:
        if name and name not in self.allowed:
            self.allowed.append(name)

    async def invoke(self, action: str, context: Mapping[str, Any]) -> Any:
        """Return the first defined resolver result, or ``None``."""
        self.stats["invocations"] += 1

        if is_math_call(action) and not self.is_allowed(self.math_resolver_name):
            self.grant(self.math_resolver_name)
            logger.debug("math_capability_granted", action=action)

        for resolver in self.resolvers:
            if not self.is_allowed(resolver.name):
                self.audit_log.record(resolver.name, action, self.workflow_name)
                raise PolicyViolation(resolver.name, action)

            self.stats["by_resolver"][resolver.name] += 1
            try:
                result = await resolver.resolve(action, context)
            except PolicyViolation:
                raise
            except Exception as e:
                self.stats["failures"] += 1
                self.warnings.append(Diagnostic(
                    message=f"Resolver '{resolver.name}' failed on {action!r}: {e}",
                    code="resolver_error",
                ))
                logger.warning(
                    "resolver_failed",
                    resolver=resolver.name,
                    action=action,
                    error=str(e),
                )
                continue

            if result is not None:
                logger.debug("action_resolved", resolver=resolver.name, action=action)
                return result

        self.stats["unresolved"] += 1
        logger.debug("action_unresolved", action=action)
        return None
