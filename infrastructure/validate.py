#!/usr/bin/env python3
"""
Deployment Input Validation

Static checks on the template inputs before anything is rendered or applied:
- CIDR syntax, containment and overlap
- Scale set sizing and autoscale thresholds
- Tier composition (one frontend, one backend)
- Azure naming and sizing constraints
"""

import re
import sys
import ipaddress
from typing import Dict, List, Any
from dataclasses import dataclass
from enum import Enum

from .variables import DeploymentConfig, FRONTEND, BACKEND, load_deployment_config

KEY_VAULT_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9-]{1,22}[A-Za-z0-9]$")

# Storage sizes accepted by PostgreSQL flexible server
FLEXIBLE_SERVER_STORAGE_MB = (
    32768, 65536, 131072, 262144, 524288, 1048576, 2097152, 4193280, 4194304,
    8388608, 16777216, 33553408,
)


class ValidationSeverity(Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class ValidationResult:
    """Result of a single validation check."""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Dict[str, Any] = None


@dataclass
class ValidationReport:
    """Full validation report."""
    passed: bool
    errors: int
    warnings: int
    results: List[ValidationResult]

    def failures(self) -> List[ValidationResult]:
        return [r for r in self.results if not r.passed]


def _result(name: str, issues: List[str], ok_message: str,
            severity: ValidationSeverity = ValidationSeverity.ERROR, details=None) -> ValidationResult:
    return ValidationResult(
        name=name,
        passed=not issues,
        severity=severity if issues else ValidationSeverity.INFO,
        message=ok_message if not issues else "; ".join(issues),
        details=details,
    )


class ConfigValidator:
    """
    Validates deployment inputs before template rendering.

    Each validator returns one ValidationResult; a validator that raises is
    recorded as a failed ERROR result rather than aborting the run.
    """

    def __init__(self):
        self.validators = [
            self._validate_cidr_syntax,
            self._validate_subnet_containment,
            self._validate_subnet_overlap,
            self._validate_scale_set_bounds,
            self._validate_tier_composition,
            self._validate_autoscale_thresholds,
            self._validate_key_vault_name,
            self._validate_database_sizing,
            self._validate_admin_access,
        ]

    def validate_all(self, config: DeploymentConfig) -> ValidationReport:
        """Run all validators on the configuration."""
        results = []

        for validator in self.validators:
            try:
                results.append(validator(config))
            except Exception as e:
                results.append(ValidationResult(
                    name=validator.__name__.replace("_validate_", ""),
                    passed=False,
                    severity=ValidationSeverity.ERROR,
                    message=f"Validator exception: {e}"
                ))

        errors = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warnings = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        return ValidationReport(
            passed=errors == 0,
            errors=errors,
            warnings=warnings,
            results=results
        )

    @staticmethod
    def _networks(config: DeploymentConfig):
        net = config.networking
        vnet = ipaddress.ip_network(net.vnet_cidr, strict=True)
        subnets = {name: ipaddress.ip_network(cidr, strict=True) for name, cidr in net.subnets().items()}
        return vnet, subnets

    def _validate_cidr_syntax(self, config: DeploymentConfig) -> ValidationResult:
        net = config.networking
        issues = []
        candidates = {"vnet": net.vnet_cidr, "admin_source": net.admin_source_cidr}
        candidates.update(net.subnets())
        for name, cidr in candidates.items():
            try:
                ipaddress.ip_network(cidr, strict=True)
            except ValueError as e:
                issues.append(f"{name}: {e}")
        return _result("cidr_syntax", issues, "All CIDRs are valid network addresses")

    def _validate_subnet_containment(self, config: DeploymentConfig) -> ValidationResult:
        vnet, subnets = self._networks(config)
        issues = [
            f"{name} subnet {subnet} is outside VNet {vnet}"
            for name, subnet in subnets.items()
            if subnet.version != vnet.version or not subnet.subnet_of(vnet)
        ]
        return _result("subnet_containment", issues, "All subnets lie inside the VNet")

    def _validate_subnet_overlap(self, config: DeploymentConfig) -> ValidationResult:
        _, subnets = self._networks(config)
        names = list(subnets)
        overlaps = []
        for i, first in enumerate(names):
            for second in names[i + 1:]:
                if subnets[first].overlaps(subnets[second]):
                    overlaps.append(f"{first} ({subnets[first]}) overlaps {second} ({subnets[second]})")
        return _result("subnet_overlap", overlaps, "No subnet overlaps detected")

    def _validate_scale_set_bounds(self, config: DeploymentConfig) -> ValidationResult:
        issues = []
        for compute in config.compute:
            if not 1 <= compute.min_instances <= compute.instance_count <= compute.max_instances:
                issues.append(
                    f"{compute.tier}: expected 1 <= min ({compute.min_instances}) <= "
                    f"count ({compute.instance_count}) <= max ({compute.max_instances})"
                )
            if not 1 <= compute.app_port <= 65535:
                issues.append(f"{compute.tier}: app_port {compute.app_port} out of range")
        return _result("scale_set_bounds", issues, "Scale set sizing is consistent")

    def _validate_tier_composition(self, config: DeploymentConfig) -> ValidationResult:
        tiers = [c.tier for c in config.compute]
        issues = []
        for expected in (FRONTEND, BACKEND):
            if tiers.count(expected) != 1:
                issues.append(f"expected exactly one {expected} tier, found {tiers.count(expected)}")
        unknown = sorted(set(tiers) - {FRONTEND, BACKEND})
        if unknown:
            issues.append(f"unknown tiers: {unknown}")
        return _result("tier_composition", issues, "One frontend and one backend tier declared",
                       details={"tiers": tiers})

    def _validate_autoscale_thresholds(self, config: DeploymentConfig) -> ValidationResult:
        issues = []
        for compute in config.compute:
            low, high = compute.cpu_scale_in_threshold, compute.cpu_scale_out_threshold
            if not (1 <= low <= 100 and 1 <= high <= 100):
                issues.append(f"{compute.tier}: thresholds must be within 1..100")
            elif low >= high:
                issues.append(f"{compute.tier}: scale-in threshold {low} must be below scale-out {high}")
        return _result("autoscale_thresholds", issues, "Autoscale thresholds are consistent")

    def _validate_key_vault_name(self, config: DeploymentConfig) -> ValidationResult:
        name = config.secrets.key_vault_name
        issues = []
        if not KEY_VAULT_NAME.match(name) or "--" in name:
            issues.append(
                f"Key Vault name {name!r} must be 3-24 letters, digits or single hyphens, "
                "start with a letter and not end with a hyphen"
            )
        return _result("key_vault_name", issues, "Key Vault name is valid")

    def _validate_database_sizing(self, config: DeploymentConfig) -> ValidationResult:
        db = config.database
        issues = []
        if db.storage_mb not in FLEXIBLE_SERVER_STORAGE_MB:
            issues.append(f"storage_mb {db.storage_mb} is not a flexible server storage size")
        if not 7 <= db.backup_retention_days <= 35:
            issues.append(f"backup_retention_days {db.backup_retention_days} must be within 7..35")
        return _result("database_sizing", issues, "Database sizing is valid")

    def _validate_admin_access(self, config: DeploymentConfig) -> ValidationResult:
        issues = []
        if config.networking.admin_source_cidr in ("0.0.0.0/0", "::/0"):
            issues.append("SSH to the frontend tier is open to the whole Internet")
        return _result("open_admin_access", issues, "Admin access is restricted",
                       severity=ValidationSeverity.WARNING)


def validate_config_file(config_path: str) -> ValidationReport:
    """Load and validate a deployment inputs file."""
    return ConfigValidator().validate_all(load_deployment_config(config_path))


def print_report(report: ValidationReport, stream=sys.stdout):
    print(f"\n{'='*60}", file=stream)
    print("Validation Report", file=stream)
    print(f"{'='*60}", file=stream)
    print(f"Status: {'PASSED' if report.passed else 'FAILED'}", file=stream)
    print(f"Errors: {report.errors}", file=stream)
    print(f"Warnings: {report.warnings}", file=stream)
    print("\nDetails:", file=stream)
    for result in report.results:
        status = "✓" if result.passed else "✗"
        print(f"  {status} {result.name}: {result.message}", file=stream)


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python -m infrastructure.validate <deployment.yaml>")
        sys.exit(1)

    report = validate_config_file(sys.argv[1])
    print_report(report)
    sys.exit(0 if report.passed else 1)
