#!/usr/bin/env python3
"""
Deployment inputs for the infrastructure templates.

One DeploymentConfig describes everything the templates are parameterized on:
region, network ranges, scale set sizing and images, database sizing, DNS
zones and the secrets store. Credentials are absent; they are
generated at apply time and kept in Key Vault.
"""

from dataclasses import dataclass, field, fields, asdict
from typing import Any, Dict, List, Optional

import yaml

FRONTEND = "frontend"
BACKEND = "backend"


@dataclass
class NetworkingConfig:
    vnet_cidr: str = "10.0.0.0/16"
    frontend_subnet_cidr: str = "10.0.1.0/24"
    backend_subnet_cidr: str = "10.0.2.0/24"
    database_subnet_cidr: str = "10.0.3.0/24"
    admin_source_cidr: str = "0.0.0.0/0"

    def subnets(self) -> Dict[str, str]:
        return {
            FRONTEND: self.frontend_subnet_cidr,
            BACKEND: self.backend_subnet_cidr,
            "database": self.database_subnet_cidr,
        }


@dataclass
class ImageReference:
    publisher: str = "Canonical"
    offer: str = "0001-com-ubuntu-server-jammy"
    sku: str = "22_04-lts-gen2"
    version: str = "latest"


@dataclass
class ComputeConfig:
    tier: str = FRONTEND
    vm_size: str = "Standard_B1s"
    instance_count: int = 2
    min_instances: int = 1
    max_instances: int = 3
    app_port: int = 8080
    admin_username: str = "azureuser"
    image: ImageReference = field(default_factory=ImageReference)
    repo_url: str = "https://github.com/example/three-tier-goals.git"
    cpu_scale_out_threshold: int = 75
    cpu_scale_in_threshold: int = 25


@dataclass
class DatabaseConfig:
    sku_name: str = "B_Standard_B1ms"
    version: str = "16"
    storage_mb: int = 32768
    admin_username: str = "psqladmin"
    database_name: str = "goalsdb"
    backup_retention_days: int = 7


@dataclass
class DnsConfig:
    private_zone_name: str = "goals.postgres.database.azure.com"
    public_zone_name: Optional[str] = None
    frontend_record: str = "www"


@dataclass
class SecretsConfig:
    key_vault_name: str = "goals-kv"
    sku_name: str = "standard"
    purge_protection: bool = False


def _default_tiers() -> List[ComputeConfig]:
    return [
        ComputeConfig(tier=FRONTEND, app_port=8080),
        ComputeConfig(tier=BACKEND, app_port=3000),
    ]


@dataclass
class DeploymentConfig:
    project: str = "goals"
    environment: str = "dev"
    location: str = "canadacentral"
    tags: Dict[str, str] = field(default_factory=dict)
    networking: NetworkingConfig = field(default_factory=NetworkingConfig)
    compute: List[ComputeConfig] = field(default_factory=_default_tiers)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    dns: DnsConfig = field(default_factory=DnsConfig)
    secrets: SecretsConfig = field(default_factory=SecretsConfig)
    state_backend: Optional[Dict[str, str]] = None

    @property
    def resource_prefix(self) -> str:
        return f"{self.project}-{self.environment}"

    def tier(self, name: str) -> ComputeConfig:
        for compute in self.compute:
            if compute.tier == name:
                return compute
        raise ValueError(f"No compute tier named {name!r}")

    def tiers(self) -> List[ComputeConfig]:
        return list(self.compute)

    def all_tags(self) -> Dict[str, str]:
        tags = {"project": self.project, "environment": self.environment}
        tags.update(self.tags)
        return tags

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "DeploymentConfig":
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown deployment settings: {sorted(unknown)}")

        if "networking" in data:
            data["networking"] = _build(NetworkingConfig, data["networking"])
        if "compute" in data:
            data["compute"] = [_build_compute(item) for item in data["compute"] or []]
        if "database" in data:
            data["database"] = _build(DatabaseConfig, data["database"])
        if "dns" in data:
            data["dns"] = _build(DnsConfig, data["dns"])
        if "secrets" in data:
            data["secrets"] = _build(SecretsConfig, data["secrets"])
        return cls(**data)


def _build(dataclass_type, values):
    values = dict(values or {})
    known = {f.name for f in fields(dataclass_type)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown {dataclass_type.__name__} settings: {sorted(unknown)}")
    return dataclass_type(**values)


def _build_compute(values) -> ComputeConfig:
    values = dict(values or {})
    if "image" in values:
        values["image"] = _build(ImageReference, values["image"])
    return _build(ComputeConfig, values)


def load_deployment_config(path: str) -> DeploymentConfig:
    """Load deployment inputs from a YAML file."""
    with open(path, "r") as f:
        return DeploymentConfig.from_dict(yaml.safe_load(f))
