from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import pytest

from ricettario.core.errors import (
    ExecutionFailedError,
    InvalidCredentialsError,
    RpcUnavailableError,
    UnreachableError,
)
from ricettario.core.models import RemoteConfig
from ricettario.services.provisioning_wizard import ProvisioningWizard, WizardStep, run_inline
from ricettario.services.repository import CatalogRepository

URL = "https://demo.supabase.co"
KEY = "anon-public-key"


@dataclass
class FakeBackend:
    exists: bool = True
    reachable_error: Optional[BaseException] = None
    exists_error: Optional[BaseException] = None
    provision_error: Optional[BaseException] = None
    calls: list[str] = field(default_factory=list)

    def check_reachable(self) -> None:
        self.calls.append("check_reachable")
        if self.reachable_error is not None:
            raise self.reachable_error

    def table_exists(self, name: str) -> bool:
        self.calls.append(f"table_exists:{name}")
        if self.exists_error is not None:
            raise self.exists_error
        return self.exists

    def provision_schema(self, ddl: str) -> None:
        self.calls.append("provision_schema")
        if self.provision_error is not None:
            raise self.provision_error
        self.exists = True


class DeferredRunner:
    """Queues work so tests decide when results arrive."""

    def __init__(self) -> None:
        self.pending: list[tuple[Callable[[], Any], Any, Any]] = []

    def __call__(self, fn, *, on_result=None, on_error=None) -> None:
        self.pending.append((fn, on_result, on_error))

    def finish_next(self) -> None:
        fn, on_result, on_error = self.pending.pop(0)
        run_inline(fn, on_result=on_result, on_error=on_error)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


def _wizard(repository: CatalogRepository, backend: FakeBackend, runner=run_inline) -> ProvisioningWizard:
    connections: list[tuple[str, str]] = []

    def connector(url: str, anon_key: str) -> FakeBackend:
        connections.append((url, anon_key))
        return backend

    wizard = ProvisioningWizard(
        repository,
        connector=connector,
        runner=runner,
        ddl_loader=lambda: "CREATE TABLE public.recipes ();",
    )
    wizard.connections = connections  # type: ignore[attr-defined]
    return wizard


def _to_credentials(wizard: ProvisioningWizard, url: str = URL, key: str = KEY) -> None:
    wizard.open()
    wizard.proceed()
    wizard.set_credentials(url, key)


def test_open_without_config_starts_at_intro(repository: CatalogRepository, backend: FakeBackend) -> None:
    wizard = _wizard(repository, backend)

    assert wizard.open() is WizardStep.INTRO
    assert wizard.proceed() is True
    assert wizard.step is WizardStep.CREDENTIALS


def test_existing_table_reaches_connected_without_provisioning(
    repository: CatalogRepository, backend: FakeBackend
) -> None:
    wizard = _wizard(repository, backend)
    _to_credentials(wizard)

    assert wizard.test_connection() is True

    assert wizard.step is WizardStep.CONNECTED
    assert "provision_schema" not in backend.calls
    assert wizard.table_exists is True
    assert repository.load_settings().remote_config == RemoteConfig(url=URL, anon_key=KEY, connected=True)


def test_missing_table_then_provision_reaches_connected(
    repository: CatalogRepository, backend: FakeBackend
) -> None:
    backend.exists = False
    wizard = _wizard(repository, backend)
    _to_credentials(wizard)
    wizard.test_connection()

    assert wizard.step is WizardStep.SCHEMA_CHECK
    assert wizard.table_exists is False
    assert wizard.can_provision
    # Credentials are kept but not yet marked connected.
    assert repository.load_settings().remote_config == RemoteConfig(url=URL, anon_key=KEY, connected=False)

    assert wizard.provision() is True

    assert wizard.step is WizardStep.CONNECTED
    assert backend.calls.count("provision_schema") == 1
    assert repository.load_settings().remote_config.connected is True


@pytest.mark.parametrize(
    "error,expected",
    [
        (RpcUnavailableError("no rpc", title="Provisioning Unavailable"), RpcUnavailableError),
        (ExecutionFailedError("failed", title="Provisioning Failed"), ExecutionFailedError),
        (RuntimeError("socket closed"), ExecutionFailedError),
    ],
)
def test_provision_failure_stays_in_schema_check(
    repository: CatalogRepository, backend: FakeBackend, error: BaseException, expected: type
) -> None:
    backend.exists = False
    backend.provision_error = error
    wizard = _wizard(repository, backend)
    _to_credentials(wizard)
    wizard.test_connection()

    wizard.provision()

    assert wizard.step is WizardStep.SCHEMA_CHECK
    assert wizard.table_exists is False
    assert isinstance(wizard.error, expected)
    assert wizard.error_message
    assert wizard.can_provision
    assert repository.load_settings().remote_config.connected is False


def test_failed_connection_test_leaves_settings_untouched(
    repository: CatalogRepository, backend: FakeBackend
) -> None:
    backend.reachable_error = UnreachableError("offline", title="Connection Failed")
    wizard = _wizard(repository, backend)
    _to_credentials(wizard)

    wizard.test_connection()

    assert wizard.step is WizardStep.CREDENTIALS
    assert wizard.connection_ok is False
    assert isinstance(wizard.error, UnreachableError)
    assert repository.load_settings().remote_config is None
    assert wizard.busy is None


def test_connector_errors_are_reported(repository: CatalogRepository, backend: FakeBackend) -> None:
    def connector(url: str, anon_key: str):
        raise InvalidCredentialsError("bad url", title="Invalid Credentials")

    wizard = ProvisioningWizard(repository, connector=connector, runner=run_inline, ddl_loader=lambda: "")
    _to_credentials(wizard, url="not a url")

    wizard.test_connection()

    assert wizard.step is WizardStep.CREDENTIALS
    assert isinstance(wizard.error, InvalidCredentialsError)


def test_empty_credentials_do_not_start_a_test(repository: CatalogRepository, backend: FakeBackend) -> None:
    wizard = _wizard(repository, backend)
    _to_credentials(wizard, url="  ", key=KEY)

    assert wizard.can_test_connection is False
    assert wizard.test_connection() is False
    assert isinstance(wizard.error, InvalidCredentialsError)
    assert wizard.connections == []  # type: ignore[attr-defined]
    assert repository.load_settings().remote_config is None


def test_disconnect_resets_config_and_reopen_starts_over(
    repository: CatalogRepository, backend: FakeBackend
) -> None:
    wizard = _wizard(repository, backend)
    _to_credentials(wizard)
    wizard.test_connection()
    assert wizard.step is WizardStep.CONNECTED

    assert wizard.disconnect() is True

    assert repository.load_settings().remote_config == RemoteConfig(url="", anon_key="", connected=False)
    assert wizard.step is WizardStep.INTRO
    assert wizard.url == "" and wizard.anon_key == ""

    wizard.close()
    assert wizard.open() is WizardStep.INTRO


def test_reopen_with_persisted_connection_goes_straight_to_connected(
    repository: CatalogRepository, backend: FakeBackend
) -> None:
    repository.update_settings(remote_config=RemoteConfig(url=URL, anon_key=KEY, connected=True))
    wizard = _wizard(repository, backend)

    assert wizard.open() is WizardStep.CONNECTED
    assert wizard.url == URL
    assert backend.calls == []


def test_reopen_with_unverified_credentials_prefills_intro(
    repository: CatalogRepository, backend: FakeBackend
) -> None:
    repository.update_settings(remote_config=RemoteConfig(url=URL, anon_key=KEY, connected=False))
    wizard = _wizard(repository, backend)

    assert wizard.open() is WizardStep.INTRO
    wizard.proceed()
    assert (wizard.url, wizard.anon_key) == (URL, KEY)
    assert wizard.can_test_connection


def test_second_provision_while_in_flight_is_refused(
    repository: CatalogRepository, backend: FakeBackend
) -> None:
    backend.exists = False
    runner = DeferredRunner()
    wizard = _wizard(repository, backend, runner=runner)
    _to_credentials(wizard)
    wizard.test_connection()
    runner.finish_next()  # connection test
    runner.finish_next()  # schema check
    assert wizard.table_exists is False

    assert wizard.provision() is True
    assert wizard.busy == "provision"
    assert wizard.provision() is False
    assert wizard.back() is False
    runner.finish_next()

    assert runner.pending == []
    assert backend.calls.count("provision_schema") == 1
    assert wizard.step is WizardStep.CONNECTED


def test_result_after_close_is_discarded(repository: CatalogRepository, backend: FakeBackend) -> None:
    runner = DeferredRunner()
    wizard = _wizard(repository, backend, runner=runner)
    _to_credentials(wizard)
    wizard.test_connection()

    wizard.close()
    runner.finish_next()

    assert repository.load_settings().remote_config is None
    assert runner.pending == []


def test_result_from_previous_session_does_not_leak_into_new_one(
    repository: CatalogRepository, backend: FakeBackend
) -> None:
    runner = DeferredRunner()
    wizard = _wizard(repository, backend, runner=runner)
    _to_credentials(wizard)
    wizard.test_connection()

    wizard.close()
    wizard.open()
    runner.finish_next()

    assert wizard.step is WizardStep.INTRO
    assert wizard.busy is None
    assert repository.load_settings().remote_config is None


def test_schema_check_error_can_be_retried(repository: CatalogRepository, backend: FakeBackend) -> None:
    backend.exists_error = RuntimeError("timeout")
    wizard = _wizard(repository, backend)
    _to_credentials(wizard)
    wizard.test_connection()

    assert wizard.step is WizardStep.SCHEMA_CHECK
    assert wizard.table_exists is None
    assert isinstance(wizard.error, UnreachableError)
    assert wizard.can_provision is False

    backend.exists_error = None
    assert wizard.check_schema() is True
    assert wizard.step is WizardStep.CONNECTED


def test_back_navigation(repository: CatalogRepository, backend: FakeBackend) -> None:
    backend.exists = False
    wizard = _wizard(repository, backend)
    _to_credentials(wizard)
    wizard.test_connection()

    assert wizard.back() is True
    assert wizard.step is WizardStep.CREDENTIALS
    assert wizard.table_exists is None
    assert wizard.back() is True
    assert wizard.step is WizardStep.INTRO
    assert wizard.back() is False


def test_reentering_schema_check_asks_the_backend_again(
    repository: CatalogRepository, backend: FakeBackend
) -> None:
    backend.exists = False
    wizard = _wizard(repository, backend)
    _to_credentials(wizard)
    wizard.test_connection()
    assert wizard.step is WizardStep.SCHEMA_CHECK
    assert wizard.table_exists is False

    wizard.back()
    # Table created out of band, e.g. by running the script manually.
    backend.exists = True
    assert wizard.test_connection() is True

    assert backend.calls.count("table_exists:recipes") == 2
    assert wizard.step is WizardStep.CONNECTED
    assert "provision_schema" not in backend.calls
    assert repository.load_settings().remote_config == RemoteConfig(url=URL, anon_key=KEY, connected=True)


def test_editing_credentials_clears_previous_error(repository: CatalogRepository, backend: FakeBackend) -> None:
    backend.reachable_error = UnreachableError("offline", title="Connection Failed")
    wizard = _wizard(repository, backend)
    _to_credentials(wizard)
    wizard.test_connection()
    assert wizard.error is not None

    wizard.set_credentials(URL, KEY + "x")

    assert wizard.error is None
    assert wizard.connection_ok is None


def test_listeners_see_every_transition(repository: CatalogRepository, backend: FakeBackend) -> None:
    wizard = _wizard(repository, backend)
    steps: list[WizardStep] = []
    wizard.add_listener(lambda w: steps.append(w.step))

    _to_credentials(wizard)
    wizard.test_connection()

    assert steps[0] is WizardStep.INTRO
    assert WizardStep.CREDENTIALS in steps
    assert WizardStep.SCHEMA_CHECK in steps
    assert steps[-1] is WizardStep.CONNECTED


def test_settings_write_failure_is_reported(
    repository: CatalogRepository, backend: FakeBackend, monkeypatch: pytest.MonkeyPatch
) -> None:
    wizard = _wizard(repository, backend)
    _to_credentials(wizard)

    def fail(*args, **kwargs):
        raise OSError("read-only file system")

    monkeypatch.setattr(repository, "update_settings", fail)
    wizard.test_connection()

    assert wizard.step is WizardStep.CREDENTIALS
    assert wizard.error is not None
    assert wizard.error.title == "Settings Not Saved"
