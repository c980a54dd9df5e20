"""Generates the per-step deployment tool configuration."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from ..model.graph import RESOURCE_ID_TEMPLATE, ResourceNode, connection_context
from ..workspace.environment import Environment
from ..workspace.recipes import RECIPE_KIND_BICEP

logger = logging.getLogger(__name__)

MAIN_TF = "main.tf"
TFVARS_FILE = "terraform.tfvars.json"
OUTPUTS_TF = "outputs.tf"
BICEPPARAM_FILE = "main.bicepparam"

_PROVIDER_SOURCES = {
    "kubernetes": "hashicorp/kubernetes",
    "aws": "hashicorp/aws",
    "azurerm": "hashicorp/azurerm",
}


def hcl_string(value: str) -> str:
    """Quoted HCL string literal; ``${`` and ``%{`` are escaped so nothing interpolates."""
    return json.dumps(value).replace("${", "$${").replace("%{", "%%{")


def required_providers(environment: Environment) -> List[str]:
    providers = ["kubernetes"]
    if environment.provider == "aws":
        providers.append("aws")
    elif environment.provider == "azure":
        providers.append("azurerm")
    return providers


def recipe_context(node: ResourceNode, application: str, environment: Environment) -> Dict[str, Any]:
    """Metadata handed to the recipe module as its ``context`` input (properties excluded)."""
    namespace = environment.kubernetes_namespace or "default"
    return {
        "resource": {
            "name": node.name or node.symbolic_name,
            "type": node.base_type,
            "id": RESOURCE_ID_TEMPLATE.format(type=node.type, name=node.name or node.symbolic_name),
            "connections": connection_context(node),
        },
        "application": {"name": application},
        "environment": {**environment.to_context(), "variables": dict(environment.variables)},
        "runtime": {"kubernetes": {"namespace": namespace, "environmentNamespace": namespace}},
    }


def render_main_tf(node: ResourceNode, recipe_location: str, environment: Environment) -> str:
    lines = ["terraform {", "  required_providers {"]
    for provider in required_providers(environment):
        lines.append(f"    {provider} = {{")
        lines.append(f"      source = {hcl_string(_PROVIDER_SOURCES[provider])}")
        lines.append("    }")
    lines += ["  }", "}", ""]

    lines.append('provider "kubernetes" {')
    lines.append(f"  config_path = {hcl_string('~/.kube/config')}")
    if environment.kubernetes_context:
        lines.append(f"  config_context = {hcl_string(environment.kubernetes_context)}")
    lines += ["}", ""]

    if environment.provider == "aws":
        lines.append('provider "aws" {')
        if environment.aws_region:
            lines.append(f"  region = {hcl_string(environment.aws_region)}")
        lines += ["}", ""]
    elif environment.provider == "azure":
        lines.append('provider "azurerm" {')
        lines.append("  features {}")
        if environment.azure_subscription_id:
            lines.append(f"  subscription_id = {hcl_string(environment.azure_subscription_id)}")
        lines += ["}", ""]

    lines += [
        'variable "context" {',
        "  type = any",
        "}",
        "",
        'variable "properties" {',
        "  type    = any",
        "  default = {}",
        "}",
        "",
        f'module "{node.symbolic_name}" {{',
        f"  source = {hcl_string(recipe_location)}",
        "  context = merge(var.context, {",
        "    resource = merge(var.context.resource, { properties = var.properties })",
        "  })",
        "}",
        "",
    ]
    return "\n".join(lines)


def render_outputs_tf(node: ResourceNode) -> str:
    return "\n".join([
        'output "result" {',
        f"  value     = try(module.{node.symbolic_name}.result, null)",
        "  sensitive = true",
        "}",
        "",
    ])


def render_tfvars(node: ResourceNode, application: str, environment: Environment) -> Dict[str, Any]:
    return {
        "context": recipe_context(node, application, environment),
        "properties": node.plain_properties(),
    }


def render_bicepparam(node: ResourceNode, recipe_location: str, application: str, environment: Environment) -> str:
    lines = [
        f"using '{recipe_location}'",
        "",
        f"param context = {json.dumps(recipe_context(node, application, environment), indent=2, sort_keys=True)}",
        "",
        f"param properties = {json.dumps(node.plain_properties(), indent=2, sort_keys=True)}",
        "",
    ]
    return "\n".join(lines)


def write_step_config(
    step_dir: Path,
    node: ResourceNode,
    recipe_kind: str,
    recipe_location: str,
    application: str,
    environment: Environment,
) -> List[Path]:
    """Write the configuration files for one step and return their paths."""
    step_dir.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []

    if recipe_kind == RECIPE_KIND_BICEP:
        path = step_dir / BICEPPARAM_FILE
        path.write_text(render_bicepparam(node, recipe_location, application, environment), encoding="utf-8")
        written.append(path)
    else:
        main_tf = step_dir / MAIN_TF
        main_tf.write_text(render_main_tf(node, recipe_location, environment), encoding="utf-8")
        written.append(main_tf)

        tfvars = step_dir / TFVARS_FILE
        with open(tfvars, "w", encoding="utf-8") as f:
            json.dump(render_tfvars(node, application, environment), f, indent=2, ensure_ascii=False)
        written.append(tfvars)

        outputs = step_dir / OUTPUTS_TF
        outputs.write_text(render_outputs_tf(node), encoding="utf-8")
        written.append(outputs)

    logger.debug(f"Generated {len(written)} files in {step_dir}")
    return written

