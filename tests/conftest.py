# tests/conftest.py
"""Pytest configuration and shared fixtures."""

import json
import pytest
import pytest_asyncio
import yaml
from pathlib import Path

from api_scenario_test.catalog import ApiSpecDocument, OperationCatalog, load_catalog
from api_scenario_test.core import FileLoader, VariableScope
from api_scenario_test.scenarios import ScenarioLoader


VM_PATH = ("/subscriptions/{subscriptionId}/resourceGroups/{resourceGroupName}"
           "/providers/Microsoft.Compute/virtualMachines/{vmName}")
VM_LIST_PATH = ("/subscriptions/{subscriptionId}/resourceGroups/{resourceGroupName}"
                "/providers/Microsoft.Compute/virtualMachines")


def make_compute_spec() -> dict:
    """Minimal compute API document with one long-running PUT and DELETE."""
    return {
        "swagger": "2.0",
        "info": {"title": "ComputeManagementClient", "version": "2021-01-01"},
        "paths": {
            VM_PATH: {
                "parameters": [{"$ref": "#/parameters/SubscriptionIdParameter"}],
                "put": {
                    "operationId": "VirtualMachines_CreateOrUpdate",
                    "parameters": [
                        {"name": "resourceGroupName", "in": "path", "required": True, "type": "string"},
                        {"name": "vmName", "in": "path", "required": True, "type": "string"},
                        {"name": "parameters", "in": "body", "required": True,
                         "schema": {"$ref": "#/definitions/VirtualMachine"}},
                        {"$ref": "#/parameters/ApiVersionParameter"},
                    ],
                    "responses": {
                        "200": {"schema": {"$ref": "#/definitions/VirtualMachine"}},
                        "201": {"schema": {"$ref": "#/definitions/VirtualMachine"}},
                    },
                    "x-ms-long-running-operation": True,
                    "x-ms-examples": {
                        "Create a vm": {"$ref": "./examples/VirtualMachines_Create.json"},
                    },
                },
                "get": {
                    "operationId": "VirtualMachines_Get",
                    "parameters": [
                        {"name": "resourceGroupName", "in": "path", "required": True, "type": "string"},
                        {"name": "vmName", "in": "path", "required": True, "type": "string"},
                        {"$ref": "#/parameters/ApiVersionParameter"},
                    ],
                    "responses": {"200": {"schema": {"$ref": "#/definitions/VirtualMachine"}}},
                    "x-ms-examples": {
                        "Get a vm": {"$ref": "./examples/VirtualMachines_Get.json"},
                    },
                },
                "delete": {
                    "operationId": "VirtualMachines_Delete",
                    "parameters": [
                        {"name": "resourceGroupName", "in": "path", "required": True, "type": "string"},
                        {"name": "vmName", "in": "path", "required": True, "type": "string"},
                        {"$ref": "#/parameters/ApiVersionParameter"},
                    ],
                    "responses": {"200": {}, "202": {}, "204": {}},
                    "x-ms-long-running-operation": True,
                    "x-ms-examples": {
                        "Delete a vm": {"$ref": "./examples/VirtualMachines_Delete.json"},
                    },
                },
            },
            VM_LIST_PATH: {
                "get": {
                    "operationId": "VirtualMachines_List",
                    "parameters": [
                        {"$ref": "#/parameters/SubscriptionIdParameter"},
                        {"name": "resourceGroupName", "in": "path", "required": True, "type": "string"},
                        {"$ref": "#/parameters/ApiVersionParameter"},
                    ],
                    "responses": {"200": {}},
                },
            },
        },
        "parameters": {
            "SubscriptionIdParameter": {
                "name": "subscriptionId", "in": "path", "required": True, "type": "string",
            },
            "ApiVersionParameter": {
                "name": "api-version", "in": "query", "required": True, "type": "string",
            },
        },
        "definitions": {
            "VirtualMachine": {
                "properties": {
                    "id": {"type": "string", "readOnly": True},
                    "name": {"type": "string", "readOnly": True},
                    "location": {"type": "string"},
                    "properties": {"$ref": "#/definitions/VirtualMachineProperties"},
                },
            },
            "VirtualMachineProperties": {
                "properties": {
                    "provisioningState": {"type": "string", "readOnly": True},
                    "osProfile": {"$ref": "#/definitions/OSProfile"},
                },
            },
            "OSProfile": {
                "properties": {
                    "adminUsername": {"type": "string"},
                    "adminPassword": {"type": "string", "x-ms-secret": True},
                    "computerName": {"type": "string", "x-ms-mutability": ["create", "read"]},
                },
            },
        },
    }


VM_ID = "/subscriptions/sub/resourceGroups/rg/providers/Microsoft.Compute/virtualMachines/myVM"

CREATE_EXAMPLE = {
    "parameters": {
        "subscriptionId": "sub",
        "resourceGroupName": "rg",
        "vmName": "myVM",
        "api-version": "2021-01-01",
        "parameters": {
            "location": "westus",
            "properties": {
                "osProfile": {
                    "adminUsername": "admin",
                    "adminPassword": "{{adminPassword}}",
                    "computerName": "myVM",
                },
            },
        },
    },
    "responses": {
        "200": {
            "body": {
                "id": VM_ID,
                "name": "myVM",
                "location": "westus",
                "properties": {
                    "provisioningState": "Succeeded",
                    "osProfile": {"adminUsername": "admin", "computerName": "myVM"},
                },
            },
        },
    },
}

GET_EXAMPLE = {
    "parameters": {
        "subscriptionId": "sub",
        "resourceGroupName": "rg",
        "vmName": "myVM",
        "api-version": "2021-01-01",
    },
    "responses": {"200": {"body": CREATE_EXAMPLE["responses"]["200"]["body"]}},
}

DELETE_EXAMPLE = {
    "parameters": {
        "subscriptionId": "sub",
        "resourceGroupName": "rg",
        "vmName": "myVM",
        "api-version": "2021-01-01",
    },
    "responses": {"200": {}},
}

ARM_TEMPLATE = {
    "$schema": "https://schema.management.azure.com/schemas/2019-04-01/deploymentTemplate.json#",
    "contentVersion": "1.0.0.0",
    "parameters": {
        "identityName": {"type": "string"},
        "location": {"type": "string", "defaultValue": "[resourceGroup().location]"},
    },
    "resources": [],
    "outputs": {
        "identityId": {"type": "string", "value": "[resourceId('identities', parameters('identityName'))]"},
    },
}

DEFINITION = {
    "scope": "ResourceGroup",
    "variables": {"vmName": "myVM"},
    "prepareSteps": [
        {"step": "create_identity", "armTemplateDeployment": "identity_template.json"},
    ],
    "testScenarios": [
        {
            "description": "Create, update and delete a virtual machine",
            "variables": {"adminPassword": "P@ssw0rd!"},
            "steps": [
                {
                    "step": "create_vm",
                    "resourceName": "vm",
                    "exampleFile": "../examples/VirtualMachines_Create.json",
                    "outputVariables": {"vmId": {"fromResponse": "/id"}},
                },
                {
                    "step": "update_vm",
                    "resourceName": "vm",
                    "resourceUpdate": [
                        {"replace": "/properties/osProfile/adminUsername", "value": "newadmin"},
                    ],
                },
                {"step": "get_vm", "exampleFile": "../examples/VirtualMachines_Get.json"},
                {"step": "delete_vm", "exampleFile": "../examples/VirtualMachines_Delete.json"},
            ],
        },
    ],
}


def _write_json(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2))
    return path


@pytest.fixture
def spec_dir(tmp_path):
    """Spec tree laid out as ``<api-version>/{spec, examples/, scenarios/}``."""
    root = tmp_path / "specification" / "compute" / "2021-01-01"
    _write_json(root / "compute.json", make_compute_spec())
    _write_json(root / "examples" / "VirtualMachines_Create.json", CREATE_EXAMPLE)
    _write_json(root / "examples" / "VirtualMachines_Get.json", GET_EXAMPLE)
    _write_json(root / "examples" / "VirtualMachines_Delete.json", DELETE_EXAMPLE)
    _write_json(root / "scenarios" / "identity_template.json", ARM_TEMPLATE)
    return root


@pytest.fixture
def spec_file(spec_dir):
    """Path to the compute spec document."""
    return spec_dir / "compute.json"


def write_definition(spec_dir: Path, data: dict, name: str = "vm.yaml") -> Path:
    path = spec_dir / "scenarios" / name
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        yaml.safe_dump(data, f, sort_keys=False)
    return path


@pytest.fixture
def definition_file(spec_dir):
    """Create the default test definition file."""
    return write_definition(spec_dir, DEFINITION)


@pytest.fixture
def catalog(spec_file):
    """Catalog built directly from the compute spec document."""
    return OperationCatalog([ApiSpecDocument(path=str(spec_file),
                                             content=json.loads(spec_file.read_text()))])


@pytest_asyncio.fixture
async def loaded_catalog(spec_file):
    """Catalog built through the async file loader."""
    return await load_catalog([spec_file], FileLoader())


@pytest.fixture
def scenario_loader(catalog):
    """Provide a scenario loader bound to the compute catalog."""
    return ScenarioLoader(catalog, FileLoader())


@pytest.fixture
def run_env():
    """Variables an env file would provide for a run."""
    return VariableScope({
        "subscriptionId": "sub",
        "location": "westus",
        "identityName": "testIdentity",
        "client_secret": "very-secret",
    })


@pytest.fixture
def config_file(tmp_path):
    """Create a temporary configuration file."""
    config_path = tmp_path / "test_config.yaml"

    config_data = {
        "http": {
            "base_url": "https://management.example.com",
            "timeout": 30,
        },
        "lro": {
            "polling_interval": 1,
            "max_polls": 5,
        },
        "monitoring": {
            "job_name": "test_job",
        },
        "output": {
            "output_dir": str(tmp_path / "results"),
            "log_level": "DEBUG",
        },
    }

    with open(config_path, 'w') as f:
        yaml.dump(config_data, f)

    return config_path


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
