#!/usr/bin/env python3
"""
Terraform Remote State Bootstrap

Creates the resource group, storage account and blob container that hold the
Terraform state file. Run once per subscription, after sp_creation.

Prerequisite: az logged in with rights to create resource groups.
"""

import sys
import logging
import argparse
from dataclasses import dataclass
from typing import Dict, Optional

from .az_cli import AzCli, AzCliError

logger = logging.getLogger(__name__)

LOCATION = "canadacentral"
RG_NAME = "tfstate-rg"
STORAGE_ACCOUNT_NAME = "tfstatestorageaccimv27"
STORAGE_CONTAINER_NAME = "tfstatestoragecontainerimv27"
DEFAULT_STATE_KEY = "three-tier-app.tfstate"


@dataclass
class StateBackend:
    resource_group_name: str = RG_NAME
    storage_account_name: str = STORAGE_ACCOUNT_NAME
    container_name: str = STORAGE_CONTAINER_NAME
    location: str = LOCATION

    def backend_config(self, key: str = DEFAULT_STATE_KEY) -> Dict[str, str]:
        """Settings for the azurerm backend block of the Terraform templates."""
        return {
            "resource_group_name": self.resource_group_name,
            "storage_account_name": self.storage_account_name,
            "container_name": self.container_name,
            "key": key,
        }


def create_state_backend(az: Optional[AzCli] = None) -> StateBackend:
    az = az or AzCli()
    backend = StateBackend()

    az.run("group", "create", "--name", backend.resource_group_name, "--location", backend.location)

    az.run(
        "storage", "account", "create",
        "--name", backend.storage_account_name,
        "--resource-group", backend.resource_group_name,
        "--sku", "Standard_LRS",
        "--encryption-services", "blob",
    )

    az.run(
        "storage", "container", "create",
        "--name", backend.container_name,
        "--account-name", backend.storage_account_name,
    )

    logger.info(
        f"State store ready: {backend.storage_account_name}/{backend.container_name} "
        f"in {backend.resource_group_name}"
    )
    return backend


def main(argv=None) -> int:
    from api.diagnostic_logger import configure_logging

    parser = argparse.ArgumentParser(description="Create the Terraform remote state store")
    parser.add_argument("--dry-run", action="store_true", help="log the az commands without running them")
    args = parser.parse_args(argv)

    configure_logging()

    try:
        create_state_backend(AzCli(dry_run=args.dry_run))
    except AzCliError as e:
        logger.error(str(e))
        return e.returncode or 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
