"""Guided setup of the remote recipes backend.

The wizard walks through four steps::

    INTRO -> CREDENTIALS -> SCHEMA_CHECK -> CONNECTED

Remote work is handed to a runner (``run_bg`` in the desktop app) and the
result is applied on the caller's thread. Only one remote call may be
outstanding at a time; a second request while busy is refused. Results that
arrive after the wizard was closed, reopened or disconnected are dropped by
comparing the generation token captured when the call was issued.

Settings are only ever written through ``CatalogRepository.update_settings``
and only the ``remote_config`` field is touched.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Optional

from ricettario.core.errors import (
    ExecutionFailedError,
    InvalidCredentialsError,
    UnreachableError,
    UserFacingError,
)
from ricettario.core.models import RemoteConfig
from ricettario.lib.redaction import redact
from ricettario.services.remote_backend import RECIPES_TABLE, RemoteBackend, load_recipes_ddl
from ricettario.services.repository import CatalogRepository

Connector = Callable[[str, str], RemoteBackend]
Runner = Callable[..., Any]
ChangeListener = Callable[["ProvisioningWizard"], None]


class WizardStep(str, Enum):
    INTRO = "intro"
    CREDENTIALS = "credentials"
    SCHEMA_CHECK = "schema_check"
    CONNECTED = "connected"


def run_inline(
    fn: Callable[[], Any],
    *,
    on_result: Optional[Callable[[Any], None]] = None,
    on_error: Optional[Callable[[BaseException], None]] = None,
) -> None:
    """Runner that executes immediately on the calling thread."""
    try:
        result = fn()
    except Exception as exc:
        if on_error is not None:
            on_error(exc)
        return
    if on_result is not None:
        on_result(result)


class ProvisioningWizard:
    def __init__(
        self,
        repository: CatalogRepository,
        *,
        connector: Connector = RemoteBackend.connect,
        runner: Optional[Runner] = None,
        ddl_loader: Callable[[], str] = load_recipes_ddl,
    ) -> None:
        if runner is None:
            from ricettario.services.background_runner import run_bg

            runner = run_bg
        self._repository = repository
        self._connector = connector
        self._runner = runner
        self._ddl_loader = ddl_loader
        self._logger = logging.getLogger(__name__)
        self._listeners: list[ChangeListener] = []

        self._generation = 0
        self._is_open = False
        self._step = WizardStep.INTRO
        self._url = ""
        self._anon_key = ""
        self._backend: Optional[RemoteBackend] = None
        self._busy: Optional[str] = None
        self._connection_ok: Optional[bool] = None
        self._table_exists: Optional[bool] = None
        self._error: Optional[UserFacingError] = None
        self._notice = ""

    # Read-only state ---------------------------------------------------
    @property
    def step(self) -> WizardStep:
        return self._step

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def url(self) -> str:
        return self._url

    @property
    def anon_key(self) -> str:
        return self._anon_key

    @property
    def busy(self) -> Optional[str]:
        """Name of the outstanding remote operation, if any."""
        return self._busy

    @property
    def connection_ok(self) -> Optional[bool]:
        return self._connection_ok

    @property
    def table_exists(self) -> Optional[bool]:
        """Last schema check result; None while pending or undetermined."""
        return self._table_exists

    @property
    def error(self) -> Optional[UserFacingError]:
        return self._error

    @property
    def error_message(self) -> str:
        if self._error is None:
            return ""
        body = str(self._error)
        if self._error.remediation:
            body = f"{body}\n{self._error.remediation}"
        return body

    @property
    def notice(self) -> str:
        return self._notice

    @property
    def can_test_connection(self) -> bool:
        return (
            self._step is WizardStep.CREDENTIALS
            and self._busy is None
            and bool(self._url.strip())
            and bool(self._anon_key.strip())
        )

    @property
    def can_provision(self) -> bool:
        return (
            self._step is WizardStep.SCHEMA_CHECK
            and self._busy is None
            and self._backend is not None
            and self._table_exists is False
        )

    def ddl_text(self) -> str:
        """SQL that ``provision`` would send, for display before running it."""
        return self._ddl_loader()

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # Lifecycle ---------------------------------------------------------
    def open(self) -> WizardStep:
        self._generation += 1
        self._is_open = True
        config = self._repository.load_settings().remote_config or RemoteConfig.disconnected()
        self._url = config.url
        self._anon_key = config.anon_key
        self._reset_progress()
        # A persisted connection is trusted without a new round trip.
        target = WizardStep.CONNECTED if config.connected and config.has_credentials else WizardStep.INTRO
        self._transition(target)
        return self._step

    def close(self) -> None:
        self._generation += 1
        self._is_open = False
        self._busy = None
        self._backend = None
        self._logger.debug("Wizard closed", extra={"operation": "wizard_close"})
        self._notify()

    def proceed(self) -> bool:
        if not self._is_open or self._step is not WizardStep.INTRO:
            return False
        self._transition(WizardStep.CREDENTIALS)
        return True

    def back(self) -> bool:
        if not self._is_open or self._busy is not None:
            return False
        if self._step is WizardStep.CREDENTIALS:
            self._transition(WizardStep.INTRO)
            return True
        if self._step is WizardStep.SCHEMA_CHECK:
            self._backend = None
            self._table_exists = None
            self._transition(WizardStep.CREDENTIALS)
            return True
        return False

    def set_credentials(self, url: str, anon_key: str) -> None:
        if self._step is not WizardStep.CREDENTIALS or self._busy is not None:
            return
        if url == self._url and anon_key == self._anon_key:
            return
        self._url = url
        self._anon_key = anon_key
        self._connection_ok = None
        self._error = None
        self._notice = ""
        self._notify()

    # Remote operations -------------------------------------------------
    def test_connection(self) -> bool:
        if not self._is_open or self._step is not WizardStep.CREDENTIALS or self._busy is not None:
            return False
        url = self._url.strip()
        anon_key = self._anon_key.strip()
        if not url or not anon_key:
            self._error = InvalidCredentialsError(
                "Both the project URL and the anon key are required.",
                title="Missing Credentials",
            )
            self._notify()
            return False

        token = self._begin("test_connection")
        connector = self._connector

        def work() -> RemoteBackend:
            backend = connector(url, anon_key)
            backend.check_reachable()
            return backend

        def on_ok(backend: RemoteBackend) -> None:
            if not self._is_current(token, "test_connection"):
                return
            self._busy = None
            self._backend = backend
            self._connection_ok = True
            self._notice = "Connection successful."
            if not self._persist(RemoteConfig(url=url, anon_key=anon_key, connected=False)):
                self._notify()
                return
            self._transition(WizardStep.SCHEMA_CHECK)
            self.check_schema()

        def on_err(exc: BaseException) -> None:
            if not self._is_current(token, "test_connection"):
                return
            self._busy = None
            self._connection_ok = False
            self._error = self._as_user_error(
                exc,
                lambda detail: UnreachableError(
                    f"Connection test failed: {detail}",
                    title="Connection Failed",
                    remediation="Verify the URL and key, then retry.",
                ),
            )
            self._logger.warning(
                "Connection test failed",
                extra={"operation": "test_connection", "url": url, "error": str(self._error)},
            )
            self._notify()

        self._runner(work, on_result=on_ok, on_error=on_err)
        return True

    def check_schema(self) -> bool:
        if (
            not self._is_open
            or self._step is not WizardStep.SCHEMA_CHECK
            or self._busy is not None
            or self._backend is None
        ):
            return False
        self._table_exists = None
        token = self._begin("check_schema")
        backend = self._backend

        def on_ok(exists: bool) -> None:
            if not self._is_current(token, "check_schema"):
                return
            self._busy = None
            self._table_exists = bool(exists)
            self._logger.info(
                "Schema check finished",
                extra={"operation": "check_schema", "table_exists": self._table_exists},
            )
            if self._table_exists:
                self._enter_connected()
            else:
                self._notify()

        def on_err(exc: BaseException) -> None:
            if not self._is_current(token, "check_schema"):
                return
            self._busy = None
            self._table_exists = None
            self._error = self._as_user_error(
                exc,
                lambda detail: UnreachableError(
                    f"Could not inspect the remote schema: {detail}",
                    title="Schema Check Failed",
                    remediation="Retry the check.",
                ),
            )
            self._notify()

        self._runner(lambda: backend.table_exists(RECIPES_TABLE), on_result=on_ok, on_error=on_err)
        return True

    def provision(self) -> bool:
        if not self._is_open or not self.can_provision:
            return False
        token = self._begin("provision")
        backend = self._backend
        assert backend is not None
        ddl_loader = self._ddl_loader

        def on_ok(_: Any) -> None:
            if not self._is_current(token, "provision"):
                return
            self._busy = None
            self._table_exists = True
            self._notice = "Recipes table created."
            self._enter_connected()

        def on_err(exc: BaseException) -> None:
            if not self._is_current(token, "provision"):
                return
            self._busy = None
            self._table_exists = False
            self._error = self._as_user_error(
                exc,
                lambda detail: ExecutionFailedError(
                    f"Creating the recipes table failed: {detail}",
                    title="Provisioning Failed",
                    remediation="Make sure RPC functions are enabled on the project.",
                ),
            )
            self._logger.warning(
                "Provisioning failed",
                extra={"operation": "provision", "error": str(self._error)},
            )
            self._notify()

        self._runner(lambda: backend.provision_schema(ddl_loader()), on_result=on_ok, on_error=on_err)
        return True

    def disconnect(self) -> bool:
        if not self._is_open or self._step is not WizardStep.CONNECTED:
            return False
        self._generation += 1
        if not self._persist(RemoteConfig.disconnected()):
            self._notify()
            return False
        self._url = ""
        self._anon_key = ""
        self._reset_progress()
        self._transition(WizardStep.INTRO)
        return True

    # Internal helpers --------------------------------------------------
    def _begin(self, operation: str) -> int:
        self._busy = operation
        self._error = None
        self._notice = ""
        self._logger.info("Remote operation started", extra={"operation": operation})
        self._notify()
        return self._generation

    def _is_current(self, token: int, operation: str) -> bool:
        if token == self._generation and self._is_open:
            return True
        self._logger.debug("Discarding stale result", extra={"operation": operation})
        return False

    def _enter_connected(self) -> None:
        if self._persist(RemoteConfig(url=self._url.strip(), anon_key=self._anon_key.strip(), connected=True)):
            self._transition(WizardStep.CONNECTED)
        else:
            self._notify()

    def _persist(self, config: RemoteConfig) -> bool:
        try:
            self._repository.update_settings(remote_config=config)
        except Exception as exc:
            self._logger.error(
                "Could not save remote configuration",
                extra={"operation": "persist_remote_config"},
                exc_info=True,
            )
            self._error = UserFacingError(
                f"Could not save the connection settings: {redact(str(exc))}",
                title="Settings Not Saved",
                remediation="Check that the data folder is writable and retry.",
            )
            return False
        return True

    def _reset_progress(self) -> None:
        self._backend = None
        self._busy = None
        self._connection_ok = None
        self._table_exists = None
        self._error = None
        self._notice = ""

    def _transition(self, target: WizardStep) -> None:
        previous = self._step
        self._step = target
        self._logger.info(
            "Wizard step changed",
            extra={"operation": "wizard", "from_step": previous.value, "to_step": target.value},
        )
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    @staticmethod
    def _as_user_error(
        exc: BaseException,
        fallback: Callable[[str], UserFacingError],
    ) -> UserFacingError:
        if isinstance(exc, UserFacingError):
            return exc
        return fallback(redact(str(exc)) or type(exc).__name__)


__all__ = ["ProvisioningWizard", "WizardStep", "run_inline"]
