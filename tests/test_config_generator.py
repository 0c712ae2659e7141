"""Tests for the Terraform template generator"""

import json
from pathlib import Path

import pytest

from infrastructure import config_generator
from infrastructure.config_generator import KEY_VAULT_SECRETS, TemplateGenerator
from infrastructure.variables import BACKEND, FRONTEND, DeploymentConfig, load_deployment_config

EXAMPLE_CONFIG = Path(__file__).resolve().parent.parent / "infrastructure" / "deployment.example.yaml"

BACKEND_SETTINGS = {
    "resource_group_name": "tfstate-rg",
    "storage_account_name": "tfstatestorageaccimv27",
    "container_name": "tfstatestoragecontainerimv27",
    "key": "three-tier-app.tfstate",
}


@pytest.fixture
def generator():
    return TemplateGenerator(DeploymentConfig())


def test_generate_all_file_set(generator):
    files = generator.generate_all()
    assert set(files) == {
        "providers.tf",
        "variables.tf",
        "networking.tf",
        "database.tf",
        "dns.tf",
        "secrets.tf",
        "outputs.tf",
        "terraform.tfvars.json",
        "compute_frontend.tf",
        "compute_backend.tf",
        "scripts/frontend_init.sh.tftpl",
        "scripts/backend_init.sh.tftpl",
    }


def test_hcl_braces_balanced(generator):
    for name, content in generator.generate_all().items():
        if name.endswith(".tf"):
            assert content.count("{") == content.count("}"), name


def test_every_tfvar_is_declared(generator):
    tfvars = json.loads(generator.generate_tfvars())
    declared = generator.generate_variables()

    for name in tfvars:
        assert f'variable "{name}" {{' in declared
    assert tfvars["prefix"] == "goals-dev"
    assert tfvars["backend_app_port"] == 3000
    assert tfvars["tags"] == {"project": "goals", "environment": "dev"}


def test_no_credentials_in_tfvars(generator):
    tfvars = json.loads(generator.generate_tfvars())
    assert not any("password" in name for name in tfvars)


def test_providers_without_state_backend(generator):
    assert 'backend "azurerm"' not in generator.generate_providers()


def test_providers_with_state_backend():
    generator = TemplateGenerator(DeploymentConfig(state_backend=dict(BACKEND_SETTINGS)))
    providers = generator.generate_providers()

    assert 'backend "azurerm"' in providers
    assert 'container_name       = "tfstatestoragecontainerimv27"' in providers
    assert 'key                  = "three-tier-app.tfstate"' in providers


def test_frontend_compute_is_public(generator):
    compute = generator.generate_compute(FRONTEND)

    assert 'resource "azurerm_public_ip" "frontend"' in compute
    assert "public_ip_address_id = azurerm_public_ip.frontend.id" in compute
    assert "frontend_port                  = 80" in compute
    assert "backend_url = " in compute
    assert "identity {" not in compute


def test_backend_compute_is_internal(generator):
    compute = generator.generate_compute(BACKEND)

    assert "azurerm_public_ip" not in compute
    assert "cidrhost(var.backend_subnet_cidr, 10)" in compute
    assert "frontend_port                  = var.backend_app_port" in compute
    assert 'type = "SystemAssigned"' in compute
    assert "key_vault_uri = azurerm_key_vault.main.vault_uri" in compute


def test_compute_autoscale_rules(generator):
    compute = generator.generate_compute(BACKEND)
    assert "threshold          = var.backend_cpu_scale_out_threshold" in compute
    assert "threshold          = var.backend_cpu_scale_in_threshold" in compute
    assert "maximum = var.backend_max_instances" in compute


def test_unknown_tier_rejected(generator):
    with pytest.raises(ValueError):
        generator.generate_compute("database")
    with pytest.raises(ValueError):
        generator.generate_custom_data("database")


def test_frontend_custom_data(generator):
    script = generator.generate_custom_data(FRONTEND)

    assert script.startswith("#!/bin/bash")
    assert "BACKEND_URL=${backend_url}" in script
    assert "PORT=8080" in script
    assert "TIER=frontend" in script
    assert "systemctl enable --now goals.service" in script


def test_backend_custom_data_reads_key_vault(generator):
    script = generator.generate_custom_data(BACKEND)

    assert "${key_vault_uri}secrets/$1" in script
    assert "PORT=3000" in script
    assert "DB_SSLMODE=require" in script
    assert "[postgres]" in script


def test_secrets_template_lists_key_vault_secrets(generator):
    secrets = generator.generate_secrets()
    for secret in KEY_VAULT_SECRETS:
        assert f'name         = "{secret["name"]}"' in secrets

    deployer = secrets[secrets.index('resource "azurerm_role_assignment" "deployer_secrets"'):].split("}")[0]
    assert 'role_definition_name = "Key Vault Secrets Officer"' in deployer
    assert "principal_id         = data.azurerm_client_config.current.object_id" in deployer
    assert secrets.count("depends_on = [azurerm_role_assignment.deployer_secrets]") == len(KEY_VAULT_SECRETS)


def test_dns_without_public_zone(generator):
    assert "azurerm_dns_zone" not in generator.generate_dns()
    assert "frontend_fqdn" not in generator.generate_outputs()


def test_dns_with_public_zone():
    config = DeploymentConfig()
    config.dns.public_zone_name = "goals.example.com"
    generator = TemplateGenerator(config)

    assert 'resource "azurerm_dns_zone" "public"' in generator.generate_dns()
    assert 'output "frontend_fqdn"' in generator.generate_outputs()
    assert json.loads(generator.generate_tfvars())["public_dns_zone_name"] == "goals.example.com"


def test_ssh_key_output_is_sensitive(generator):
    outputs = generator.generate_outputs()
    block = outputs[outputs.index('output "ssh_private_key"'):]
    assert "sensitive   = true" in block.split("}")[0]


def test_write_all(tmp_path, generator):
    written = generator.write_all(str(tmp_path))

    assert len(written) == len(generator.generate_all())
    assert (tmp_path / "scripts" / "backend_init.sh.tftpl").is_file()
    assert json.loads((tmp_path / "terraform.tfvars.json").read_text())["location"] == "canadacentral"


def test_main_renders_example(tmp_path, capsys):
    assert config_generator.main([str(EXAMPLE_CONFIG), str(tmp_path)]) == 0
    assert (tmp_path / "compute_backend.tf").is_file()
    assert 'backend "azurerm"' in (tmp_path / "providers.tf").read_text()
    assert "wrote" in capsys.readouterr().out


def test_main_refuses_invalid_inputs(tmp_path):
    config_path = tmp_path / "bad.yaml"
    config_path.write_text(
        EXAMPLE_CONFIG.read_text().replace("backend_subnet_cidr: 10.0.2.0/24", "backend_subnet_cidr: 10.0.1.0/24")
    )
    out_dir = tmp_path / "out"

    assert config_generator.main([str(config_path), str(out_dir)]) == 1
    assert not out_dir.exists()


def test_main_usage():
    assert config_generator.main([]) == 1


def test_example_inputs_render():
    generator = TemplateGenerator(load_deployment_config(str(EXAMPLE_CONFIG)))
    tfvars = json.loads(generator.generate_tfvars())
    assert tfvars["backend_vm_size"] == "Standard_B2s"
    assert tfvars["tags"]["owner"] == "platform-team"
