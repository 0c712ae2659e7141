#!/usr/bin/env python3
"""
Infrastructure Template Generator

Renders the Terraform (HCL) templates of the three-tier deployment from one
DeploymentConfig. Implements template-based generation for:
- Providers and the remote state backend
- Networking (VNet, subnets, NSGs, NAT gateway)
- Compute scale sets, composed per tier (public frontend, internal backend)
- Managed PostgreSQL database
- Private/public DNS
- Key Vault secrets and the generated SSH key
- Variables, tfvars and outputs

Rendering never talks to Azure; Terraform itself plans and applies.
"""

import os
import sys
import json
from typing import Dict, List, Any
from dataclasses import dataclass
from jinja2 import Template

from .variables import DeploymentConfig, FRONTEND, BACKEND, load_deployment_config
from .validate import ConfigValidator, print_report


def _template(source: str) -> Template:
    return Template(source, trim_blocks=True, lstrip_blocks=True, keep_trailing_newline=True)


@dataclass
class TerraformVariable:
    """One declared input variable and the value written to tfvars."""

    name: str
    type: str
    description: str
    value: Any
    sensitive: bool = False


PROVIDERS_TEMPLATE = """terraform {
  required_version = ">= 1.5.0"

  required_providers {
    azurerm = {
      source  = "hashicorp/azurerm"
      version = "~> 3.100"
    }
    random = {
      source  = "hashicorp/random"
      version = "~> 3.6"
    }
    tls = {
      source  = "hashicorp/tls"
      version = "~> 4.0"
    }
  }
{% if backend %}

  backend "azurerm" {
    resource_group_name  = "{{ backend.resource_group_name }}"
    storage_account_name = "{{ backend.storage_account_name }}"
    container_name       = "{{ backend.container_name }}"
    key                  = "{{ backend.key }}"
  }
{% endif %}
}

provider "azurerm" {
  features {
    key_vault {
      purge_soft_delete_on_destroy = {{ "false" if purge_protection else "true" }}
    }
  }
}

data "azurerm_client_config" "current" {}
"""

VARIABLES_TEMPLATE = """{% for variable in variables %}
variable "{{ variable.name }}" {
  description = "{{ variable.description }}"
  type        = {{ variable.type }}
{% if variable.sensitive %}
  sensitive   = true
{% endif %}
}

{% endfor %}
"""

NETWORKING_TEMPLATE = """resource "azurerm_resource_group" "main" {
  name     = "${var.prefix}-rg"
  location = var.location
  tags     = var.tags
}

resource "azurerm_virtual_network" "main" {
  name                = "${var.prefix}-vnet"
  location            = azurerm_resource_group.main.location
  resource_group_name = azurerm_resource_group.main.name
  address_space       = [var.vnet_cidr]
  tags                = var.tags
}

{% for tier in app_tiers %}
resource "azurerm_subnet" "{{ tier }}" {
  name                 = "${var.prefix}-{{ tier }}-snet"
  resource_group_name  = azurerm_resource_group.main.name
  virtual_network_name = azurerm_virtual_network.main.name
  address_prefixes     = [var.{{ tier }}_subnet_cidr]
}

{% endfor %}
resource "azurerm_subnet" "database" {
  name                 = "${var.prefix}-database-snet"
  resource_group_name  = azurerm_resource_group.main.name
  virtual_network_name = azurerm_virtual_network.main.name
  address_prefixes     = [var.database_subnet_cidr]
  service_endpoints    = ["Microsoft.Storage"]

  delegation {
    name = "postgres-flexible-server"

    service_delegation {
      name    = "Microsoft.DBforPostgreSQL/flexibleServers"
      actions = ["Microsoft.Network/virtualNetworks/subnets/join/action"]
    }
  }
}

resource "azurerm_network_security_group" "frontend" {
  name                = "${var.prefix}-frontend-nsg"
  location            = azurerm_resource_group.main.location
  resource_group_name = azurerm_resource_group.main.name
  tags                = var.tags

  security_rule {
    name                       = "allow-http"
    priority                   = 100
    direction                  = "Inbound"
    access                     = "Allow"
    protocol                   = "Tcp"
    source_port_range          = "*"
    destination_port_ranges    = ["80", tostring(var.frontend_app_port)]
    source_address_prefix      = "Internet"
    destination_address_prefix = "*"
  }

  security_rule {
    name                       = "allow-ssh"
    priority                   = 110
    direction                  = "Inbound"
    access                     = "Allow"
    protocol                   = "Tcp"
    source_port_range          = "*"
    destination_port_range     = "22"
    source_address_prefix      = var.admin_source_cidr
    destination_address_prefix = "*"
  }
}

resource "azurerm_network_security_group" "backend" {
  name                = "${var.prefix}-backend-nsg"
  location            = azurerm_resource_group.main.location
  resource_group_name = azurerm_resource_group.main.name
  tags                = var.tags

  security_rule {
    name                       = "allow-frontend-to-api"
    priority                   = 100
    direction                  = "Inbound"
    access                     = "Allow"
    protocol                   = "Tcp"
    source_port_range          = "*"
    destination_port_range     = tostring(var.backend_app_port)
    source_address_prefix      = var.frontend_subnet_cidr
    destination_address_prefix = "*"
  }

  security_rule {
    name                       = "allow-ssh-from-frontend"
    priority                   = 110
    direction                  = "Inbound"
    access                     = "Allow"
    protocol                   = "Tcp"
    source_port_range          = "*"
    destination_port_range     = "22"
    source_address_prefix      = var.frontend_subnet_cidr
    destination_address_prefix = "*"
  }

  security_rule {
    name                       = "allow-lb-probe"
    priority                   = 120
    direction                  = "Inbound"
    access                     = "Allow"
    protocol                   = "Tcp"
    source_port_range          = "*"
    destination_port_range     = tostring(var.backend_app_port)
    source_address_prefix      = "AzureLoadBalancer"
    destination_address_prefix = "*"
  }

  security_rule {
    name                       = "deny-vnet-inbound"
    priority                   = 4000
    direction                  = "Inbound"
    access                     = "Deny"
    protocol                   = "*"
    source_port_range          = "*"
    destination_port_range     = "*"
    source_address_prefix      = "VirtualNetwork"
    destination_address_prefix = "*"
  }
}

{% for tier in app_tiers %}
resource "azurerm_subnet_network_security_group_association" "{{ tier }}" {
  subnet_id                 = azurerm_subnet.{{ tier }}.id
  network_security_group_id = azurerm_network_security_group.{{ tier }}.id
}

{% endfor %}
resource "azurerm_public_ip" "nat" {
  name                = "${var.prefix}-nat-pip"
  location            = azurerm_resource_group.main.location
  resource_group_name = azurerm_resource_group.main.name
  allocation_method   = "Static"
  sku                 = "Standard"
  tags                = var.tags
}

resource "azurerm_nat_gateway" "main" {
  name                = "${var.prefix}-natgw"
  location            = azurerm_resource_group.main.location
  resource_group_name = azurerm_resource_group.main.name
  sku_name            = "Standard"
  tags                = var.tags
}

resource "azurerm_nat_gateway_public_ip_association" "main" {
  nat_gateway_id       = azurerm_nat_gateway.main.id
  public_ip_address_id = azurerm_public_ip.nat.id
}

{% for tier in app_tiers %}
resource "azurerm_subnet_nat_gateway_association" "{{ tier }}" {
  subnet_id      = azurerm_subnet.{{ tier }}.id
  nat_gateway_id = azurerm_nat_gateway.main.id
}

{% endfor %}
"""

COMPUTE_TEMPLATE = """{% if public %}
resource "azurerm_public_ip" "{{ tier }}" {
  name                = "${var.prefix}-{{ tier }}-pip"
  location            = azurerm_resource_group.main.location
  resource_group_name = azurerm_resource_group.main.name
  allocation_method   = "Static"
  sku                 = "Standard"
  domain_name_label   = var.prefix
  tags                = var.tags
}

{% endif %}
resource "azurerm_lb" "{{ tier }}" {
  name                = "${var.prefix}-{{ tier }}-lb"
  location            = azurerm_resource_group.main.location
  resource_group_name = azurerm_resource_group.main.name
  sku                 = "Standard"
  tags                = var.tags

  frontend_ip_configuration {
    name = "{{ tier }}-ip"
{% if public %}
    public_ip_address_id = azurerm_public_ip.{{ tier }}.id
{% else %}
    subnet_id                     = azurerm_subnet.{{ tier }}.id
    private_ip_address_allocation = "Static"
    private_ip_address            = cidrhost(var.{{ tier }}_subnet_cidr, 10)
{% endif %}
  }
}

resource "azurerm_lb_backend_address_pool" "{{ tier }}" {
  name            = "${var.prefix}-{{ tier }}-pool"
  loadbalancer_id = azurerm_lb.{{ tier }}.id
}

resource "azurerm_lb_probe" "{{ tier }}" {
  name            = "{{ tier }}-health"
  loadbalancer_id = azurerm_lb.{{ tier }}.id
  protocol        = "Http"
  port            = var.{{ tier }}_app_port
  request_path    = "/health"
}

resource "azurerm_lb_rule" "{{ tier }}" {
  name                           = "{{ tier }}-rule"
  loadbalancer_id                = azurerm_lb.{{ tier }}.id
  protocol                       = "Tcp"
  frontend_port                  = {{ frontend_port }}
  backend_port                   = var.{{ tier }}_app_port
  frontend_ip_configuration_name = "{{ tier }}-ip"
  backend_address_pool_ids       = [azurerm_lb_backend_address_pool.{{ tier }}.id]
  probe_id                       = azurerm_lb_probe.{{ tier }}.id
  disable_outbound_snat          = true
}

resource "azurerm_linux_virtual_machine_scale_set" "{{ tier }}" {
  name                = "${var.prefix}-{{ tier }}-vmss"
  location            = azurerm_resource_group.main.location
  resource_group_name = azurerm_resource_group.main.name
  sku                 = var.{{ tier }}_vm_size
  instances           = var.{{ tier }}_instance_count
  admin_username      = var.{{ tier }}_admin_username
  upgrade_mode        = "Automatic"
  health_probe_id     = azurerm_lb_probe.{{ tier }}.id
  custom_data = base64encode(templatefile("${path.module}/scripts/{{ tier }}_init.sh.tftpl", {
{% for key, value in template_vars.items() %}
    {{ key }} = {{ value }}
{% endfor %}
  }))
  tags = var.tags

  admin_ssh_key {
    username   = var.{{ tier }}_admin_username
    public_key = tls_private_key.ssh.public_key_openssh
  }

  source_image_reference {
    publisher = var.{{ tier }}_image_publisher
    offer     = var.{{ tier }}_image_offer
    sku       = var.{{ tier }}_image_sku
    version   = var.{{ tier }}_image_version
  }

  os_disk {
    storage_account_type = "Standard_LRS"
    caching              = "ReadWrite"
  }

  network_interface {
    name    = "{{ tier }}-nic"
    primary = true

    ip_configuration {
      name                                   = "internal"
      primary                                = true
      subnet_id                              = azurerm_subnet.{{ tier }}.id
      load_balancer_backend_address_pool_ids = [azurerm_lb_backend_address_pool.{{ tier }}.id]
    }
  }
{% if needs_identity %}

  identity {
    type = "SystemAssigned"
  }
{% endif %}

  depends_on = [
    azurerm_lb_rule.{{ tier }},
    azurerm_subnet_nat_gateway_association.{{ tier }},
  ]
}

resource "azurerm_monitor_autoscale_setting" "{{ tier }}" {
  name                = "${var.prefix}-{{ tier }}-autoscale"
  location            = azurerm_resource_group.main.location
  resource_group_name = azurerm_resource_group.main.name
  target_resource_id  = azurerm_linux_virtual_machine_scale_set.{{ tier }}.id
  tags                = var.tags

  profile {
    name = "cpu"

    capacity {
      default = var.{{ tier }}_instance_count
      minimum = var.{{ tier }}_min_instances
      maximum = var.{{ tier }}_max_instances
    }

{% for rule in scale_rules %}
    rule {
      metric_trigger {
        metric_name        = "Percentage CPU"
        metric_resource_id = azurerm_linux_virtual_machine_scale_set.{{ tier }}.id
        time_grain         = "PT1M"
        statistic          = "Average"
        time_window        = "PT5M"
        time_aggregation   = "Average"
        operator           = "{{ rule.operator }}"
        threshold          = var.{{ tier }}_{{ rule.threshold }}
      }

      scale_action {
        direction = "{{ rule.direction }}"
        type      = "ChangeCount"
        value     = "1"
        cooldown  = "PT5M"
      }
    }

{% endfor %}
  }
}
"""

FRONTEND_INIT_TEMPLATE = """#!/bin/bash
# Presentation tier bootstrap (rendered by Terraform templatefile)
set -euo pipefail

apt-get update -y
apt-get install -y git python3-venv

id goals >/dev/null 2>&1 || useradd --system --create-home --home-dir /opt/goals goals
git clone --depth 1 {{ repo_url }} /opt/goals/app
python3 -m venv /opt/goals/venv
/opt/goals/venv/bin/pip install /opt/goals/app

cat > /etc/goals.env <<EOF
TIER=frontend
PORT={{ app_port }}
BACKEND_URL=${backend_url}
LOG_LEVEL=INFO
EOF
{{ service_unit }}"""

BACKEND_INIT_TEMPLATE = """#!/bin/bash
# Business logic tier bootstrap (rendered by Terraform templatefile)
set -euo pipefail

apt-get update -y
apt-get install -y git python3-venv curl

id goals >/dev/null 2>&1 || useradd --system --create-home --home-dir /opt/goals goals
git clone --depth 1 {{ repo_url }} /opt/goals/app
python3 -m venv /opt/goals/venv
/opt/goals/venv/bin/pip install "/opt/goals/app[postgres]"

# Managed identity token for Key Vault; the role assignment may still be propagating
vault_token() {
  curl -sf -H Metadata:true \\
    "http://169.254.169.254/metadata/identity/oauth2/token?api-version=2018-02-01&resource=https%3A%2F%2Fvault.azure.net" \\
    | python3 -c 'import json, sys; print(json.load(sys.stdin)["access_token"])'
}

read_secret() {
  curl -sf -H "Authorization: Bearer $TOKEN" "${key_vault_uri}secrets/$1?api-version=7.4" \\
    | python3 -c 'import json, sys; print(json.load(sys.stdin)["value"])'
}

for attempt in $(seq 1 30); do
  if TOKEN=$(vault_token) && DB_PASSWORD=$(read_secret db-password); then
    break
  fi
  echo "Key Vault not readable yet (attempt $attempt), retrying in 10s"
  sleep 10
done

DB_HOST=$(read_secret db-host)
DB_USER=$(read_secret db-user)
DB_NAME=$(read_secret db-name)

umask 077
cat > /etc/goals.env <<EOF
TIER=backend
PORT={{ app_port }}
DB_HOST=$DB_HOST
DB_USER=$DB_USER
DB_PASSWORD=$DB_PASSWORD
DB_NAME=$DB_NAME
DB_SSLMODE=require
LOG_LEVEL=INFO
EOF
chown goals /etc/goals.env
{{ service_unit }}"""

SERVICE_UNIT = """
cat > /etc/systemd/system/goals.service <<'EOF'
[Unit]
Description=Goals application ({{ tier }} tier)
After=network-online.target
Wants=network-online.target

[Service]
User=goals
EnvironmentFile=/etc/goals.env
WorkingDirectory=/opt/goals/app
ExecStart=/opt/goals/venv/bin/python main.py
Restart=always
RestartSec=5

[Install]
WantedBy=multi-user.target
EOF

systemctl daemon-reload
systemctl enable --now goals.service
"""

DATABASE_TEMPLATE = """resource "random_password" "db" {
  length           = 24
  special          = true
  override_special = "_-"
}

resource "azurerm_postgresql_flexible_server" "main" {
  name                          = "${var.prefix}-psql"
  location                      = azurerm_resource_group.main.location
  resource_group_name           = azurerm_resource_group.main.name
  version                       = var.db_version
  delegated_subnet_id           = azurerm_subnet.database.id
  private_dns_zone_id           = azurerm_private_dns_zone.postgres.id
  public_network_access_enabled = false
  administrator_login           = var.db_admin_username
  administrator_password        = random_password.db.result
  sku_name                      = var.db_sku_name
  storage_mb                    = var.db_storage_mb
  backup_retention_days         = var.db_backup_retention_days
  zone                          = "1"
  tags                          = var.tags

  depends_on = [azurerm_private_dns_zone_virtual_network_link.postgres]
}

resource "azurerm_postgresql_flexible_server_database" "main" {
  name      = var.db_name
  server_id = azurerm_postgresql_flexible_server.main.id
  charset   = "UTF8"
  collation = "en_US.utf8"
}
"""

DNS_TEMPLATE = """resource "azurerm_private_dns_zone" "postgres" {
  name                = var.private_dns_zone_name
  resource_group_name = azurerm_resource_group.main.name
  tags                = var.tags
}

resource "azurerm_private_dns_zone_virtual_network_link" "postgres" {
  name                  = "${var.prefix}-postgres-link"
  private_dns_zone_name = azurerm_private_dns_zone.postgres.name
  resource_group_name   = azurerm_resource_group.main.name
  virtual_network_id    = azurerm_virtual_network.main.id
  registration_enabled  = false
}
{% if public_zone %}

resource "azurerm_dns_zone" "public" {
  name                = var.public_dns_zone_name
  resource_group_name = azurerm_resource_group.main.name
  tags                = var.tags
}

resource "azurerm_dns_a_record" "frontend" {
  name                = var.frontend_dns_record
  zone_name           = azurerm_dns_zone.public.name
  resource_group_name = azurerm_resource_group.main.name
  ttl                 = 300
  target_resource_id  = azurerm_public_ip.frontend.id
}
{% endif %}
"""

SECRETS_TEMPLATE = """resource "tls_private_key" "ssh" {
  algorithm = "RSA"
  rsa_bits  = 4096
}

resource "azurerm_key_vault" "main" {
  name                       = var.key_vault_name
  location                   = azurerm_resource_group.main.location
  resource_group_name        = azurerm_resource_group.main.name
  tenant_id                  = data.azurerm_client_config.current.tenant_id
  sku_name                   = var.key_vault_sku
  enable_rbac_authorization  = true
  purge_protection_enabled   = var.key_vault_purge_protection
  soft_delete_retention_days = 7
  tags                       = var.tags
}

resource "azurerm_role_assignment" "deployer_secrets" {
  scope                = azurerm_key_vault.main.id
  role_definition_name = "Key Vault Secrets Officer"
  principal_id         = data.azurerm_client_config.current.object_id
}

{% for secret in secrets %}
resource "azurerm_key_vault_secret" "{{ secret.resource }}" {
  name         = "{{ secret.name }}"
  value        = {{ secret.value }}
  key_vault_id = azurerm_key_vault.main.id

  depends_on = [azurerm_role_assignment.deployer_secrets]
}

{% endfor %}
resource "azurerm_role_assignment" "backend_secrets" {
  scope                = azurerm_key_vault.main.id
  role_definition_name = "Key Vault Secrets User"
  principal_id         = azurerm_linux_virtual_machine_scale_set.backend.identity[0].principal_id
}
"""

OUTPUTS_TEMPLATE = """{% for output in outputs %}
output "{{ output.name }}" {
  description = "{{ output.description }}"
  value       = {{ output.value }}
{% if output.sensitive %}
  sensitive   = true
{% endif %}
}

{% endfor %}
"""

KEY_VAULT_SECRETS = [
    {"resource": "db_password", "name": "db-password", "value": "random_password.db.result"},
    {"resource": "db_host", "name": "db-host", "value": "azurerm_postgresql_flexible_server.main.fqdn"},
    {"resource": "db_user", "name": "db-user", "value": "var.db_admin_username"},
    {"resource": "db_name", "name": "db-name", "value": "var.db_name"},
    {"resource": "ssh_private_key", "name": "ssh-private-key", "value": "tls_private_key.ssh.private_key_pem"},
]

SCALE_RULES = [
    {"operator": "GreaterThan", "threshold": "cpu_scale_out_threshold", "direction": "Increase"},
    {"operator": "LessThan", "threshold": "cpu_scale_in_threshold", "direction": "Decrease"},
]


class TemplateGenerator:
    """
    Generates the Terraform file set from a DeploymentConfig.

    The compute module is composed per tier: the frontend gets a public IP,
    a public load balancer on port 80 and a BACKEND_URL pointing at the
    backend's internal load balancer; the backend gets an internal load
    balancer with a static private address and a managed identity that can
    read database settings from Key Vault.
    """

    def __init__(self, config: DeploymentConfig):
        self.config = config
        self.providers_template = _template(PROVIDERS_TEMPLATE)
        self.variables_template = _template(VARIABLES_TEMPLATE)
        self.networking_template = _template(NETWORKING_TEMPLATE)
        self.compute_template = _template(COMPUTE_TEMPLATE)
        self.database_template = _template(DATABASE_TEMPLATE)
        self.dns_template = _template(DNS_TEMPLATE)
        self.secrets_template = _template(SECRETS_TEMPLATE)
        self.outputs_template = _template(OUTPUTS_TEMPLATE)
        self.init_templates = {
            FRONTEND: _template(FRONTEND_INIT_TEMPLATE),
            BACKEND: _template(BACKEND_INIT_TEMPLATE),
        }
        self.service_template = _template(SERVICE_UNIT)

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def variables(self) -> List[TerraformVariable]:
        config = self.config
        net = config.networking
        db = config.database
        variables = [
            TerraformVariable("prefix", "string", "Name prefix for every resource", config.resource_prefix),
            TerraformVariable("location", "string", "Azure region", config.location),
            TerraformVariable("tags", "map(string)", "Tags applied to every resource", config.all_tags()),
            TerraformVariable("vnet_cidr", "string", "VNet address space", net.vnet_cidr),
            TerraformVariable("frontend_subnet_cidr", "string", "Presentation tier subnet", net.frontend_subnet_cidr),
            TerraformVariable("backend_subnet_cidr", "string", "Business logic tier subnet", net.backend_subnet_cidr),
            TerraformVariable("database_subnet_cidr", "string", "Delegated database subnet", net.database_subnet_cidr),
            TerraformVariable("admin_source_cidr", "string", "Source range allowed to SSH to the frontend", net.admin_source_cidr),
        ]

        for compute in config.tiers():
            t = compute.tier
            variables += [
                TerraformVariable(f"{t}_vm_size", "string", f"VM size of the {t} scale set", compute.vm_size),
                TerraformVariable(f"{t}_instance_count", "number", f"Initial {t} instance count", compute.instance_count),
                TerraformVariable(f"{t}_min_instances", "number", f"Autoscale floor for {t}", compute.min_instances),
                TerraformVariable(f"{t}_max_instances", "number", f"Autoscale ceiling for {t}", compute.max_instances),
                TerraformVariable(f"{t}_app_port", "number", f"Port the {t} service listens on", compute.app_port),
                TerraformVariable(f"{t}_admin_username", "string", f"Admin user on {t} instances", compute.admin_username),
                TerraformVariable(f"{t}_image_publisher", "string", f"{t} image publisher", compute.image.publisher),
                TerraformVariable(f"{t}_image_offer", "string", f"{t} image offer", compute.image.offer),
                TerraformVariable(f"{t}_image_sku", "string", f"{t} image SKU", compute.image.sku),
                TerraformVariable(f"{t}_image_version", "string", f"{t} image version", compute.image.version),
                TerraformVariable(f"{t}_cpu_scale_out_threshold", "number", f"CPU % that adds a {t} instance", compute.cpu_scale_out_threshold),
                TerraformVariable(f"{t}_cpu_scale_in_threshold", "number", f"CPU % that removes a {t} instance", compute.cpu_scale_in_threshold),
            ]

        variables += [
            TerraformVariable("db_sku_name", "string", "PostgreSQL flexible server SKU", db.sku_name),
            TerraformVariable("db_version", "string", "PostgreSQL major version", db.version),
            TerraformVariable("db_storage_mb", "number", "Database storage in MB", db.storage_mb),
            TerraformVariable("db_admin_username", "string", "Database administrator login", db.admin_username),
            TerraformVariable("db_name", "string", "Application database name", db.database_name),
            TerraformVariable("db_backup_retention_days", "number", "Backup retention in days", db.backup_retention_days),
            TerraformVariable("private_dns_zone_name", "string", "Private DNS zone for the database", config.dns.private_zone_name),
            TerraformVariable("frontend_dns_record", "string", "Record name of the frontend in the public zone", config.dns.frontend_record),
            TerraformVariable("key_vault_name", "string", "Key Vault name (globally unique)", config.secrets.key_vault_name),
            TerraformVariable("key_vault_sku", "string", "Key Vault SKU", config.secrets.sku_name),
            TerraformVariable("key_vault_purge_protection", "bool", "Enable Key Vault purge protection", config.secrets.purge_protection),
        ]
        if config.dns.public_zone_name:
            variables.append(
                TerraformVariable("public_dns_zone_name", "string", "Public DNS zone for the frontend", config.dns.public_zone_name)
            )
        return variables

    # ------------------------------------------------------------------
    # Modules
    # ------------------------------------------------------------------

    def generate_providers(self) -> str:
        return self.providers_template.render(
            backend=self.config.state_backend,
            purge_protection=self.config.secrets.purge_protection,
        )

    def generate_variables(self) -> str:
        return self.variables_template.render(variables=self.variables())

    def generate_tfvars(self) -> str:
        return json.dumps({v.name: v.value for v in self.variables()}, indent=2) + "\n"

    def generate_networking(self) -> str:
        return self.networking_template.render(app_tiers=[FRONTEND, BACKEND])

    def generate_compute(self, tier: str) -> str:
        """Render the scale set, load balancer and autoscale setting of one tier."""
        if tier == FRONTEND:
            public = True
            frontend_port = 80
            needs_identity = False
            template_vars = {
                "backend_url": '"http://${azurerm_lb.backend.frontend_ip_configuration[0].private_ip_address}:${var.backend_app_port}"',
            }
        elif tier == BACKEND:
            public = False
            frontend_port = f"var.{tier}_app_port"
            needs_identity = True
            template_vars = {"key_vault_uri": "azurerm_key_vault.main.vault_uri"}
        else:
            raise ValueError(f"Unknown compute tier: {tier!r}")

        self.config.tier(tier)
        return self.compute_template.render(
            tier=tier,
            public=public,
            frontend_port=frontend_port,
            needs_identity=needs_identity,
            template_vars=template_vars,
            scale_rules=SCALE_RULES,
        )

    def generate_custom_data(self, tier: str) -> str:
        """Render the cloud-init script template (a Terraform .tftpl) for one tier."""
        if tier not in self.init_templates:
            raise ValueError(f"Unknown compute tier: {tier!r}")
        compute = self.config.tier(tier)
        return self.init_templates[tier].render(
            repo_url=compute.repo_url,
            app_port=compute.app_port,
            service_unit=self.service_template.render(tier=tier),
        )

    def generate_database(self) -> str:
        return self.database_template.render()

    def generate_dns(self) -> str:
        return self.dns_template.render(public_zone=bool(self.config.dns.public_zone_name))

    def generate_secrets(self) -> str:
        return self.secrets_template.render(secrets=KEY_VAULT_SECRETS)

    def outputs(self) -> List[Dict[str, Any]]:
        outputs = [
            {"name": "frontend_public_ip", "description": "Public address of the presentation tier",
             "value": "azurerm_public_ip.frontend.ip_address"},
            {"name": "frontend_url", "description": "URL of the presentation tier",
             "value": '"http://${azurerm_public_ip.frontend.fqdn}"'},
            {"name": "backend_private_ip", "description": "Internal load balancer address of the business logic tier",
             "value": "azurerm_lb.backend.frontend_ip_configuration[0].private_ip_address"},
            {"name": "database_fqdn", "description": "Private FQDN of the PostgreSQL server",
             "value": "azurerm_postgresql_flexible_server.main.fqdn"},
            {"name": "key_vault_uri", "description": "Key Vault holding generated credentials",
             "value": "azurerm_key_vault.main.vault_uri"},
            {"name": "ssh_private_key", "description": "Generated SSH private key for the scale sets",
             "value": "tls_private_key.ssh.private_key_pem", "sensitive": True},
        ]
        if self.config.dns.public_zone_name:
            outputs.insert(2, {
                "name": "frontend_fqdn", "description": "Public DNS name of the presentation tier",
                "value": "trimsuffix(azurerm_dns_a_record.frontend.fqdn, \".\")",
            })
        return outputs

    def generate_outputs(self) -> str:
        return self.outputs_template.render(outputs=self.outputs())

    def generate_all(self) -> Dict[str, str]:
        """Render every file of the template set, keyed by relative path."""
        files = {
            "providers.tf": self.generate_providers(),
            "variables.tf": self.generate_variables(),
            "networking.tf": self.generate_networking(),
            "database.tf": self.generate_database(),
            "dns.tf": self.generate_dns(),
            "secrets.tf": self.generate_secrets(),
            "outputs.tf": self.generate_outputs(),
            "terraform.tfvars.json": self.generate_tfvars(),
        }
        for compute in self.config.tiers():
            files[f"compute_{compute.tier}.tf"] = self.generate_compute(compute.tier)
            files[f"scripts/{compute.tier}_init.sh.tftpl"] = self.generate_custom_data(compute.tier)
        return files

    def write_all(self, out_dir: str) -> List[str]:
        written = []
        for relative_path, content in sorted(self.generate_all().items()):
            path = os.path.join(out_dir, relative_path)
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "w") as f:
                f.write(content)
            written.append(path)
        return written


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 2:
        print("Usage: python -m infrastructure.config_generator <deployment.yaml> <out_dir>")
        return 1

    config = load_deployment_config(argv[0])
    report = ConfigValidator().validate_all(config)
    if not report.passed:
        print_report(report, stream=sys.stderr)
        return 1

    for path in TemplateGenerator(config).write_all(argv[1]):
        print(f"wrote {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
