#!/usr/bin/env python3
"""
Service Principal Bootstrap

Creates the service principal Terraform runs as, assigns it the Contributor
role and the Key Vault Administrator role on the current subscription, then
logs the CLI in as that principal.

Prerequisite: an interactive `az login` with rights to create identities.

The ARM_* credentials are printed as export lines on stdout, so use:

    eval "$(python -m provisioning.sp_creation)"
"""

import sys
import shlex
import logging
import argparse
from dataclasses import dataclass
from typing import Dict, Optional

from .az_cli import AzCli, AzCliError

logger = logging.getLogger(__name__)

SP_NAME = "terraform-sp"
SP_ROLE = "Contributor"
KEY_VAULT_ROLE = "Key Vault Administrator"
DIRECTORY_PROPAGATION_WAIT = 20
LOGIN_PROPAGATION_WAIT = 30


@dataclass
class ServicePrincipalCredentials:
    client_id: str
    client_secret: str
    tenant_id: str
    subscription_id: str
    object_id: str = ""

    def as_env(self) -> Dict[str, str]:
        return {
            "ARM_CLIENT_ID": self.client_id,
            "ARM_CLIENT_SECRET": self.client_secret,
            "ARM_TENANT_ID": self.tenant_id,
            "ARM_SUBSCRIPTION_ID": self.subscription_id,
        }

    def to_exports(self) -> str:
        return "\n".join(f"export {key}={shlex.quote(value)}" for key, value in self.as_env().items())


def create_service_principal(az: Optional[AzCli] = None) -> ServicePrincipalCredentials:
    az = az or AzCli()

    subscription_id = az.run("account", "show", "--query", "id", "--output", "tsv")
    scope = f"/subscriptions/{subscription_id}"

    sp_output = az.run_json(
        "ad", "sp", "create-for-rbac",
        "--name", SP_NAME,
        "--role", SP_ROLE,
        "--scopes", scope,
    )
    az.add_secret(sp_output.get("password", ""))

    az.wait(DIRECTORY_PROPAGATION_WAIT, "directory registration of the service principal")

    object_ids = az.run(
        "ad", "sp", "list",
        "--display-name", SP_NAME,
        "--query", "[].id",
        "--output", "tsv",
    )
    object_id = object_ids.splitlines()[0] if object_ids else ""

    az.run(
        "role", "assignment", "create",
        "--assignee-object-id", object_id,
        "--assignee-principal-type", "ServicePrincipal",
        "--role", KEY_VAULT_ROLE,
        "--scope", scope,
    )

    credentials = ServicePrincipalCredentials(
        client_id=sp_output.get("appId", ""),
        client_secret=sp_output.get("password", ""),
        tenant_id=sp_output.get("tenant", ""),
        subscription_id=subscription_id,
        object_id=object_id,
    )

    az.wait(LOGIN_PROPAGATION_WAIT, "credential propagation before login")

    az.run("account", "set", "--subscription", subscription_id)
    az.run(
        "login", "--service-principal",
        "--username", credentials.client_id,
        "--password", credentials.client_secret,
        "--tenant", credentials.tenant_id,
    )
    logger.info(f"Logged in as service principal {credentials.client_id}")
    return credentials


def main(argv=None) -> int:
    from api.diagnostic_logger import configure_logging

    parser = argparse.ArgumentParser(description="Create the Terraform service principal")
    parser.add_argument("--dry-run", action="store_true", help="log the az commands without running them")
    args = parser.parse_args(argv)

    # stdout carries the export lines
    configure_logging(stream=sys.stderr)

    try:
        credentials = create_service_principal(AzCli(dry_run=args.dry_run))
    except AzCliError as e:
        logger.error(str(e))
        return e.returncode or 1

    print(credentials.to_exports())
    return 0


if __name__ == "__main__":
    sys.exit(main())
