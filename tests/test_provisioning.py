"""Tests for the az bootstrap sequences"""

import json
import subprocess

import pytest

from provisioning import sp_creation, tf_backend_creation
from provisioning.az_cli import AzCli, AzCliError
from provisioning.sp_creation import ServicePrincipalCredentials, create_service_principal
from provisioning.tf_backend_creation import StateBackend, create_state_backend

SP_OUTPUT = {
    "appId": "11111111-aaaa-bbbb-cccc-000000000001",
    "displayName": "terraform-sp",
    "password": "generated-secret",
    "tenant": "22222222-aaaa-bbbb-cccc-000000000002",
}


class FakeRunner:
    """Records az invocations and answers them from a prefix table."""

    def __init__(self, responses=None, fail_on=None):
        self.calls = []
        self.responses = responses or {}
        self.fail_on = fail_on

    def __call__(self, argv, capture_output=True, text=True, check=False):
        self.calls.append(argv)
        command = " ".join(argv[1:])
        if self.fail_on and command.startswith(self.fail_on):
            return subprocess.CompletedProcess(argv, 1, stdout="", stderr="AuthorizationFailed")
        for prefix, stdout in self.responses.items():
            if command.startswith(prefix):
                return subprocess.CompletedProcess(argv, 0, stdout=stdout, stderr="")
        return subprocess.CompletedProcess(argv, 0, stdout="", stderr="")


def sp_responses():
    return {
        "account show": "sub-1234\r\n",
        "ad sp create-for-rbac": json.dumps(SP_OUTPUT),
        "ad sp list": "object-5678\r\n",
    }


def test_run_strips_carriage_returns():
    az = AzCli(runner=FakeRunner({"account show": "sub-1234\r\n"}))
    assert az.run("account", "show", "--query", "id", "--output", "tsv") == "sub-1234"


def test_run_json_adds_output_flag():
    runner = FakeRunner({"group show": '{"name": "rg"}'})
    az = AzCli(runner=runner)

    assert az.run_json("group", "show", "--name", "rg") == {"name": "rg"}
    assert runner.calls[0][-2:] == ["--output", "json"]


def test_run_json_keeps_explicit_output_flag():
    runner = FakeRunner({"group list": "[]"})
    az = AzCli(runner=runner)

    assert az.run_json("group", "list", "-o", "json") == []
    assert runner.calls[0].count("-o") == 1
    assert "--output" not in runner.calls[0]


def test_non_zero_exit_raises():
    az = AzCli(runner=FakeRunner(fail_on="group create"))
    with pytest.raises(AzCliError) as excinfo:
        az.run("group", "create", "--name", "rg")
    assert excinfo.value.returncode == 1
    assert "AuthorizationFailed" in str(excinfo.value)


def test_missing_az_binary():
    def runner(*args, **kwargs):
        raise FileNotFoundError("az")

    with pytest.raises(AzCliError) as excinfo:
        AzCli(runner=runner).run("version")
    assert excinfo.value.returncode == 127


def test_dry_run_executes_nothing():
    runner = FakeRunner()
    sleeps = []
    az = AzCli(dry_run=True, runner=runner, sleep=sleeps.append)

    assert az.run("group", "list") == ""
    assert az.run_json("group", "list") == {}
    az.wait(20, "propagation")

    assert runner.calls == []
    assert sleeps == []
    assert len(az.history) == 2


def test_create_service_principal_sequence():
    runner = FakeRunner(sp_responses())
    sleeps = []
    az = AzCli(runner=runner, sleep=sleeps.append)

    credentials = create_service_principal(az)

    commands = [" ".join(call[1:4]) for call in runner.calls]
    assert commands == [
        "account show --query",
        "ad sp create-for-rbac",
        "ad sp list",
        "role assignment create",
        "account set --subscription",
        "login --service-principal --username",
    ]
    assert sleeps == [sp_creation.DIRECTORY_PROPAGATION_WAIT, sp_creation.LOGIN_PROPAGATION_WAIT]

    create_call = runner.calls[1]
    assert create_call[create_call.index("--scopes") + 1] == "/subscriptions/sub-1234"
    assert create_call[create_call.index("--role") + 1] == "Contributor"

    role_call = runner.calls[3]
    assert role_call[role_call.index("--assignee-object-id") + 1] == "object-5678"
    assert role_call[role_call.index("--role") + 1] == "Key Vault Administrator"

    assert credentials == ServicePrincipalCredentials(
        client_id=SP_OUTPUT["appId"],
        client_secret=SP_OUTPUT["password"],
        tenant_id=SP_OUTPUT["tenant"],
        subscription_id="sub-1234",
        object_id="object-5678",
    )


def test_service_principal_secret_not_logged():
    az = AzCli(runner=FakeRunner(sp_responses()), sleep=lambda seconds: None)
    create_service_principal(az)

    login_line = az.history[-1]
    assert "generated-secret" not in login_line
    assert "****" in login_line


def test_service_principal_fails_fast():
    runner = FakeRunner(sp_responses(), fail_on="role assignment create")
    az = AzCli(runner=runner, sleep=lambda seconds: None)

    with pytest.raises(AzCliError):
        create_service_principal(az)

    assert not any(call[1] == "login" for call in runner.calls)


def test_credentials_env_and_exports():
    credentials = ServicePrincipalCredentials("app", "p@ss word", "tenant", "sub")

    assert credentials.as_env() == {
        "ARM_CLIENT_ID": "app",
        "ARM_CLIENT_SECRET": "p@ss word",
        "ARM_TENANT_ID": "tenant",
        "ARM_SUBSCRIPTION_ID": "sub",
    }
    assert "export ARM_CLIENT_SECRET='p@ss word'" in credentials.to_exports().splitlines()


def test_sp_creation_main_dry_run(capsys):
    assert sp_creation.main(["--dry-run"]) == 0
    out = capsys.readouterr().out
    assert "export ARM_CLIENT_ID=" in out


def test_create_state_backend_sequence():
    runner = FakeRunner()
    backend = create_state_backend(AzCli(runner=runner))

    assert runner.calls == [
        ["az", "group", "create", "--name", "tfstate-rg", "--location", "canadacentral"],
        ["az", "storage", "account", "create", "--name", "tfstatestorageaccimv27",
         "--resource-group", "tfstate-rg", "--sku", "Standard_LRS", "--encryption-services", "blob"],
        ["az", "storage", "container", "create", "--name", "tfstatestoragecontainerimv27",
         "--account-name", "tfstatestorageaccimv27"],
    ]
    assert backend == StateBackend()


def test_state_backend_stops_on_first_failure():
    runner = FakeRunner(fail_on="storage account create")
    with pytest.raises(AzCliError):
        create_state_backend(AzCli(runner=runner))
    assert len(runner.calls) == 2


def test_backend_config():
    config = StateBackend().backend_config("app.tfstate")
    assert config == {
        "resource_group_name": "tfstate-rg",
        "storage_account_name": "tfstatestorageaccimv27",
        "container_name": "tfstatestoragecontainerimv27",
        "key": "app.tfstate",
    }


def test_tf_backend_main_reports_failure(monkeypatch):
    def failing_run(argv, **kwargs):
        return subprocess.CompletedProcess(argv, 3, stdout="", stderr="denied")

    monkeypatch.setattr(
        tf_backend_creation, "AzCli", lambda dry_run=False: AzCli(dry_run=dry_run, runner=failing_run)
    )
    assert tf_backend_creation.main([]) == 3
