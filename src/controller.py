"""
StakeCourt - Court Controller

The controller is the top-level registry of the court. It owns:
- The court clock
- Typed handles to every court module (dispute manager, jurors registry, ...)
- The three governor identities (funds, config, modules)
- The term-scoped configuration history

Modules hold a non-owning back-reference to the controller and only use it to
look up roles, other modules, the clock and the config of a term. Mutating
entry points are guarded by explicit ``sender`` checks against these roles.
"""

import logging
from bisect import bisect_right
from collections.abc import Callable
from enum import Enum
from functools import wraps
from typing import Any

from court_clock import CourtClock
from court_config import CourtConfig
from court_events import EventEmitter
from court_exceptions import InvalidGovernor, ModuleNotSet, TooOldTerm, Unauthorized

logger = logging.getLogger(__name__)


class GovernorRole(Enum):
    """Governance roles, each held by an explicit address."""
    FUNDS = "funds"
    CONFIG = "config"
    MODULES = "modules"


class ModuleId(Enum):
    """Court modules registered in the controller."""
    DISPUTE_MANAGER = "dispute_manager"
    JURORS_REGISTRY = "jurors_registry"
    TREASURY = "treasury"
    VOTING = "voting"
    SUBSCRIPTIONS = "subscriptions"


# =============================================================================
# Guards
# =============================================================================


def _controller_of(owner: Any) -> "Controller":
    return owner if isinstance(owner, Controller) else owner.controller


def only_governor(role: GovernorRole):
    """
    Decorator restricting a method to the governor of ``role``.

    The decorated method must accept a keyword-only ``sender``.

    Example:
        @only_governor(GovernorRole.CONFIG)
        def set_config(self, from_term_id, config, *, sender):
            ...
    """

    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(self, *args, sender: str | None = None, **kwargs):
            governor = _controller_of(self).get_governor(role)
            if governor is None or sender != governor:
                logger.warning("Rejected %s from %s: not %s governor", f.__name__, sender, role.value)
                raise Unauthorized(sender, f"{role.value} governor", action=f.__name__)
            return f(self, *args, sender=sender, **kwargs)

        return decorated_function

    return decorator


def only_module(module_id: ModuleId):
    """Decorator restricting a method to the registered ``module_id`` module."""

    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated_function(self, *args, sender: str | None = None, **kwargs):
            if not _controller_of(self).is_module(module_id, sender):
                logger.warning("Rejected %s from %s: not %s", f.__name__, sender, module_id.value)
                raise Unauthorized(sender, module_id.value, action=f.__name__)
            return f(self, *args, sender=sender, **kwargs)

        return decorated_function

    return decorator


# =============================================================================
# Modules
# =============================================================================


class ControlledModule(EventEmitter):
    """Base class for modules wired into a controller."""

    def __init__(self, controller: "Controller", address: str):
        super().__init__()
        self.controller = controller
        self.address = address

    @property
    def clock(self) -> CourtClock:
        return self.controller.clock

    def _ensure_current_term(self) -> int:
        return self.controller.clock.ensure_current_term()

    def _last_ensured_term_id(self) -> int:
        return self.controller.clock.get_last_ensured_term_id()

    def _config_at(self, term_id: int) -> CourtConfig:
        return self.controller.get_config(term_id)


# =============================================================================
# Controller
# =============================================================================


class Controller(EventEmitter):
    """Owns the clock, the modules, the governors and the config history."""

    def __init__(
        self,
        clock: CourtClock,
        config: CourtConfig,
        funds_governor: str,
        config_governor: str,
        modules_governor: str,
    ):
        super().__init__()
        self.clock = clock
        self._governors: dict[GovernorRole, str | None] = {
            GovernorRole.FUNDS: funds_governor,
            GovernorRole.CONFIG: config_governor,
            GovernorRole.MODULES: modules_governor,
        }
        for role, address in self._governors.items():
            if not address:
                raise InvalidGovernor(action="init", details={"role": role.value})

        self._modules: dict[ModuleId, Any] = {}
        self._config_terms: list[int] = [0]
        self._configs: list[CourtConfig] = [config.validate()]

    # ==================== GOVERNORS ====================

    def get_governor(self, role: GovernorRole) -> str | None:
        return self._governors[role]

    def change_governor(self, role: GovernorRole, new_governor: str, *, sender: str) -> None:
        """Hand a governor role over. Only the current holder may do so."""
        current = self._governors[role]
        if current is None or sender != current:
            raise Unauthorized(sender, f"{role.value} governor", action="change_governor")
        if not new_governor:
            raise InvalidGovernor(action="change_governor", details={"role": role.value})

        self._governors[role] = new_governor
        self._emit_event("GovernorChanged", {
            "role": role.value,
            "previous_governor": current,
            "current_governor": new_governor,
        })

    def eject_governor(self, role: GovernorRole, *, sender: str) -> None:
        """Give up a governor role permanently."""
        current = self._governors[role]
        if current is None or sender != current:
            raise Unauthorized(sender, f"{role.value} governor", action="eject_governor")

        self._governors[role] = None
        self._emit_event("GovernorChanged", {
            "role": role.value,
            "previous_governor": current,
            "current_governor": None,
        })

    # ==================== MODULES ====================

    @only_governor(GovernorRole.MODULES)
    def set_modules(self, modules: dict[ModuleId, Any], *, sender: str) -> None:
        for module_id, module in modules.items():
            self._modules[module_id] = module
            self._emit_event("ModuleSet", {
                "module_id": module_id.value,
                "address": getattr(module, "address", None),
            })

    def set_module(self, module_id: ModuleId, module: Any, *, sender: str) -> None:
        self.set_modules({module_id: module}, sender=sender)

    def get_module(self, module_id: ModuleId) -> Any:
        module = self._modules.get(module_id)
        if module is None:
            raise ModuleNotSet(action="get_module", details={"module_id": module_id.value})
        return module

    def has_module(self, module_id: ModuleId) -> bool:
        return module_id in self._modules

    def is_module(self, module_id: ModuleId, address: str | None) -> bool:
        module = self._modules.get(module_id)
        return module is not None and address is not None and module.address == address

    # ==================== CONFIG ====================

    @only_governor(GovernorRole.CONFIG)
    def set_config(self, from_term_id: int, config: CourtConfig, *, sender: str) -> None:
        """
        Schedule ``config`` to apply from ``from_term_id`` onwards.

        Configs scheduled at or after that term are replaced.

        Raises:
            TooOldTerm: the term is not in the future
        """
        current_term_id = self.clock.ensure_current_term()
        if from_term_id <= current_term_id:
            raise TooOldTerm(
                action="set_config",
                details={"from_term_id": from_term_id, "current_term_id": current_term_id},
            )
        config.validate()

        index = bisect_right(self._config_terms, from_term_id - 1)
        del self._config_terms[index:]
        del self._configs[index:]
        self._config_terms.append(from_term_id)
        self._configs.append(config)

        self._emit_event("NewConfig", {"from_term_id": from_term_id, "config": config.to_dict()})
        logger.info("Court config scheduled from term %d", from_term_id)

    def get_config(self, term_id: int) -> CourtConfig:
        """Latest config scheduled at or before ``term_id``."""
        index = bisect_right(self._config_terms, term_id)
        return self._configs[max(index - 1, 0)]

    def get_draft_config(self, term_id: int) -> dict[str, int]:
        config = self.get_config(term_id)
        return {
            "max_jurors_per_draft_batch": config.max_jurors_per_draft_batch,
            "max_draft_iterations": config.max_draft_iterations,
            "penalty_pct": config.penalty_pct,
            "draft_lock_amount": config.draft_lock_amount(),
        }

    def get_min_active_balance(self, term_id: int) -> int:
        return self.get_config(term_id).min_active_balance
