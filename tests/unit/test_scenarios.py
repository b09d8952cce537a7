# tests/unit/test_scenarios.py
"""Unit tests for test definition loading and step resolution."""

import copy
import json
import pytest
import yaml

from api_scenario_test.catalog import ApiSpecDocument, OperationCatalog
from api_scenario_test.core import (
    AmbiguousExampleError,
    DefinitionError,
    DuplicateStepError,
    FileLoader,
    NotFoundError,
    OperationNotFoundError,
    UnboundExampleError,
    UnsupportedParameterTypeError,
    apply_patch,
)
from api_scenario_test.scenarios import (
    ArmTemplateStep,
    RawCallStep,
    RestCallStep,
    ScenarioLoader,
    StepKind,
    TestScenario,
    parse_step_kind,
)

from tests.conftest import DEFINITION, VM_ID, make_compute_spec, write_definition


def _definition(*steps, **extra):
    data = {"testScenarios": [{"description": "test", "steps": list(steps)}]}
    data.update(extra)
    return data


@pytest.mark.unit
class TestScenarioModels:
    """Test scenario data models."""

    def test_step_kind_enum(self):
        assert StepKind.REST_CALL.value == "restCall"
        assert StepKind.ARM_TEMPLATE_DEPLOYMENT.value == "armTemplateDeployment"
        assert StepKind.RAW_CALL.value == "rawCall"

    def test_step_kinds_fixed(self):
        assert RestCallStep(step="a").kind == StepKind.REST_CALL
        assert ArmTemplateStep(step="b", arm_template_deployment="t.json").kind == StepKind.ARM_TEMPLATE_DEPLOYMENT
        assert RawCallStep(step="c", raw_url="https://x").kind == StepKind.RAW_CALL

    def test_step_validation(self):
        assert RestCallStep(step="a").validate() is False
        assert RawCallStep(step="c", raw_url="https://x").validate() is True
        assert RawCallStep(step="c", raw_url="").validate() is False

    def test_scenario_lookup(self):
        steps = [RawCallStep(step="one", raw_url="u1"), RawCallStep(step="two", raw_url="u2")]
        scenario = TestScenario(name="s", description="d", steps=steps, resolved_steps=list(steps))

        assert scenario.validate() is True
        assert scenario.step_names() == ["one", "two"]
        assert scenario.get_step("two") is steps[1]
        assert scenario.get_step("three") is None

    def test_parse_step_kind(self):
        assert parse_step_kind({"step": "a", "exampleFile": "x.json"}) == StepKind.REST_CALL
        assert parse_step_kind({"step": "a", "resourceName": "r"}) == StepKind.REST_CALL
        assert parse_step_kind({"step": "a", "operationId": "Op"}) == StepKind.REST_CALL
        assert parse_step_kind({"step": "a", "armTemplateDeployment": "t.json"}) == StepKind.ARM_TEMPLATE_DEPLOYMENT
        assert parse_step_kind({"step": "a", "rawUrl": "https://x"}) == StepKind.RAW_CALL

        with pytest.raises(DefinitionError):
            parse_step_kind({"step": "a"})
        with pytest.raises(DefinitionError):
            parse_step_kind(["not", "a", "step"])


@pytest.mark.unit
class TestScenarioLoader:
    """Test loading the default virtual machine definition."""

    @pytest.mark.asyncio
    async def test_load_definition(self, scenario_loader, definition_file):
        test_def = await scenario_loader.load(definition_file)

        assert test_def.scope == "ResourceGroup"
        assert test_def.required_variables == ["subscriptionId", "location", "identityName"]
        assert test_def.variables == {"vmName": "myVM"}
        assert len(test_def.prepare_steps) == 1
        assert len(test_def.test_scenarios) == 1

        scenario = test_def.test_scenarios[0]
        assert scenario.name == "vm_0"
        assert scenario.share_test_scope is True
        assert scenario.test_def is test_def
        assert scenario.required_variables == ["subscriptionId", "location", "identityName"]
        assert scenario.step_names() == ["create_identity", "create_vm", "update_vm", "get_vm", "delete_vm"]
        assert [s.step for s in scenario.steps] == ["create_vm", "update_vm", "get_vm", "delete_vm"]

    @pytest.mark.asyncio
    async def test_prepare_steps_shared_by_reference(self, scenario_loader, spec_dir):
        data = copy.deepcopy(DEFINITION)
        data["testScenarios"].append({
            "name": "second",
            "description": "Get only",
            "steps": [{"step": "get_vm", "exampleFile": "../examples/VirtualMachines_Get.json"}],
        })
        test_def = await scenario_loader.load(write_definition(spec_dir, data))

        first, second = test_def.test_scenarios
        assert second.name == "second"
        assert first.resolved_steps[0] is test_def.prepare_steps[0]
        assert second.resolved_steps[0] is test_def.prepare_steps[0]
        assert test_def.prepare_steps[0].is_scope_prepare_step is True
        # Step names only need to be unique within one scenario scope
        assert second.step_names() == ["create_identity", "get_vm"]

    @pytest.mark.asyncio
    async def test_example_binding(self, scenario_loader, definition_file):
        test_def = await scenario_loader.load(definition_file)
        create_vm = test_def.test_scenarios[0].get_step("create_vm")

        assert create_vm.operation_id == "VirtualMachines_CreateOrUpdate"
        assert create_vm.operation.method == "PUT"
        assert create_vm.example_id == "Create a vm"
        assert create_vm.resource_type == "Microsoft.Compute/virtualMachines"
        assert create_vm.request_parameters["vmName"] == "myVM"
        assert create_vm.response_expected["id"] == VM_ID
        assert create_vm.output_variables["vmId"].from_response == "/id"

    @pytest.mark.asyncio
    async def test_resource_update(self, scenario_loader, definition_file):
        test_def = await scenario_loader.load(definition_file)
        scenario = test_def.test_scenarios[0]
        create_vm = scenario.get_step("create_vm")
        update_vm = scenario.get_step("update_vm")

        assert update_vm.operation is create_vm.operation
        assert update_vm.operation_id == "VirtualMachines_CreateOrUpdate"
        assert update_vm.example_id == "Create a vm"

        # Request body: read-only properties stripped, secret kept
        assert update_vm.request_parameters["parameters"] == {
            "location": "westus",
            "properties": {
                "osProfile": {
                    "adminUsername": "newadmin",
                    "adminPassword": "{{adminPassword}}",
                    "computerName": "myVM",
                },
            },
        }
        # Expected response: secret dropped, read-only kept
        assert update_vm.response_expected == {
            "id": VM_ID,
            "name": "myVM",
            "location": "westus",
            "properties": {
                "provisioningState": "Succeeded",
                "osProfile": {"adminUsername": "newadmin", "computerName": "myVM"},
            },
        }
        # Producer untouched
        assert create_vm.request_parameters["parameters"]["properties"]["osProfile"]["adminUsername"] == "admin"

    @pytest.mark.asyncio
    async def test_repeated_resource_update_is_stable(self, scenario_loader, spec_dir):
        data = copy.deepcopy(DEFINITION)
        steps = data["testScenarios"][0]["steps"]
        steps.insert(2, {
            "step": "update_vm_again",
            "resourceName": "vm",
            "resourceUpdate": copy.deepcopy(steps[1]["resourceUpdate"]),
        })
        test_def = await scenario_loader.load(write_definition(spec_dir, data))
        scenario = test_def.test_scenarios[0]
        update_vm = scenario.get_step("update_vm")
        update_again = scenario.get_step("update_vm_again")

        assert update_again.request_parameters == update_vm.request_parameters
        assert update_again.response_expected == update_vm.response_expected
        assert apply_patch(update_vm.response_expected, update_vm.resource_update) == update_vm.response_expected

    @pytest.mark.asyncio
    async def test_arm_template_step(self, scenario_loader, definition_file):
        test_def = await scenario_loader.load(definition_file)
        step = test_def.prepare_steps[0]

        assert isinstance(step, ArmTemplateStep)
        assert step.arm_template_payload["contentVersion"] == "1.0.0.0"
        assert step.arm_template_parameters_payload is None

    @pytest.mark.asyncio
    async def test_request_and_response_update(self, scenario_loader, spec_dir):
        path = write_definition(spec_dir, _definition({
            "step": "get_vm",
            "exampleFile": "../examples/VirtualMachines_Get.json",
            "requestUpdate": [{"replace": "/vmName", "value": "otherVM"}],
            "responseUpdate": [{"replace": "/name", "value": "otherVM"}],
        }))
        test_def = await scenario_loader.load(path)
        step = test_def.test_scenarios[0].get_step("get_vm")

        assert step.request_parameters["vmName"] == "otherVM"
        assert step.response_expected["name"] == "otherVM"

    @pytest.mark.asyncio
    async def test_raw_call_step(self, scenario_loader, spec_dir):
        path = write_definition(spec_dir, _definition({
            "step": "list_providers",
            "rawUrl": "https://management.azure.com/subscriptions/{{subscriptionId}}/providers",
            "method": "post",
            "requestHeaders": {"x-ms-test": "1"},
            "statusCode": 202,
        }), name="raw.yaml")
        test_def = await scenario_loader.load(path)
        step = test_def.test_scenarios[0].get_step("list_providers")

        assert isinstance(step, RawCallStep)
        assert step.method == "POST"
        assert step.request_headers == {"x-ms-test": "1"}
        assert step.status_code == 202

    @pytest.mark.asyncio
    async def test_subscription_scope(self, scenario_loader, spec_dir):
        path = write_definition(spec_dir, _definition(
            {"step": "raw", "rawUrl": "https://x"},
            scope="Subscription",
            requiredVariables=["subscriptionId"],
        ))
        test_def = await scenario_loader.load(path)
        assert test_def.required_variables == ["subscriptionId"]

    @pytest.mark.asyncio
    async def test_write_definition_file(self, scenario_loader, tmp_path):
        path = tmp_path / "out" / "written.yaml"
        await scenario_loader.write_definition_file(path, DEFINITION)

        with open(path) as f:
            assert yaml.safe_load(f) == DEFINITION


@pytest.mark.unit
class TestScenarioLoaderErrors:
    """Test load-time failures."""

    @pytest.mark.asyncio
    async def test_invalid_yaml(self, scenario_loader, spec_dir):
        path = spec_dir / "scenarios" / "broken.yaml"
        path.write_text("testScenarios: [\n  - {description: x")
        with pytest.raises(DefinitionError, match="Invalid YAML"):
            await scenario_loader.load(path)

    @pytest.mark.asyncio
    async def test_missing_test_scenarios(self, scenario_loader, spec_dir):
        path = write_definition(spec_dir, {"scope": "ResourceGroup"})
        with pytest.raises(DefinitionError):
            await scenario_loader.load(path)

    @pytest.mark.asyncio
    async def test_missing_step_name(self, scenario_loader, spec_dir):
        path = write_definition(spec_dir, _definition({"exampleFile": "../examples/VirtualMachines_Get.json"}))
        with pytest.raises(DefinitionError):
            await scenario_loader.load(path)

    @pytest.mark.asyncio
    async def test_unknown_step_shape(self, scenario_loader, spec_dir):
        path = write_definition(spec_dir, _definition({"step": "what", "url": "https://x"}))
        with pytest.raises(DefinitionError):
            await scenario_loader.load(path)

    @pytest.mark.asyncio
    async def test_duplicate_step_name(self, scenario_loader, spec_dir):
        path = write_definition(spec_dir, _definition(
            {"step": "get_vm", "exampleFile": "../examples/VirtualMachines_Get.json"},
            {"step": "get_vm", "exampleFile": "../examples/VirtualMachines_Get.json"},
        ))
        with pytest.raises(DuplicateStepError):
            await scenario_loader.load(path)

    @pytest.mark.asyncio
    async def test_duplicate_with_prepare_step(self, scenario_loader, spec_dir):
        path = write_definition(spec_dir, _definition(
            {"step": "get_vm", "exampleFile": "../examples/VirtualMachines_Get.json"},
            prepareSteps=[{"step": "get_vm", "exampleFile": "../examples/VirtualMachines_Get.json"}],
        ))
        with pytest.raises(DuplicateStepError):
            await scenario_loader.load(path)

    @pytest.mark.asyncio
    async def test_unknown_resource_name(self, scenario_loader, spec_dir):
        path = write_definition(spec_dir, _definition({"step": "update", "resourceName": "ghost"}))
        with pytest.raises(NotFoundError, match="Unknown resourceName"):
            await scenario_loader.load(path)

    @pytest.mark.asyncio
    async def test_resource_from_non_put_producer(self, scenario_loader, spec_dir):
        path = write_definition(spec_dir, _definition(
            {"step": "get_vm", "resourceName": "vm", "exampleFile": "../examples/VirtualMachines_Get.json"},
            {"step": "update_vm", "resourceName": "vm"},
        ))
        with pytest.raises(NotFoundError, match="non PUT"):
            await scenario_loader.load(path)

    @pytest.mark.asyncio
    async def test_unknown_operation_id(self, scenario_loader, spec_dir):
        path = write_definition(spec_dir, _definition(
            {"step": "op", "operationId": "Nope_Get", "resourceName": "vm"}))
        with pytest.raises(OperationNotFoundError) as exc_info:
            await scenario_loader.load(path)
        assert exc_info.value.step == "op"

    @pytest.mark.asyncio
    async def test_unbound_example(self, scenario_loader, spec_dir):
        (spec_dir / "examples" / "Unused.json").write_text(json.dumps({"parameters": {}, "responses": {}}))
        path = write_definition(spec_dir, _definition({"step": "x", "exampleFile": "../examples/Unused.json"}))
        with pytest.raises(UnboundExampleError):
            await scenario_loader.load(path)

    @pytest.mark.asyncio
    async def test_ambiguous_example(self, spec_dir):
        spec = make_compute_spec()
        spec["paths"]["/other/{vmName}"] = {"get": {
            "operationId": "Other_Get",
            "x-ms-examples": {"Get": {"$ref": "./examples/VirtualMachines_Get.json"}},
        }}
        catalog = OperationCatalog([ApiSpecDocument(path=str(spec_dir / "compute.json"), content=spec)])
        loader = ScenarioLoader(catalog, FileLoader())

        path = write_definition(spec_dir, _definition(
            {"step": "get", "exampleFile": "../examples/VirtualMachines_Get.json"}))
        with pytest.raises(AmbiguousExampleError):
            await loader.load(path)

    @pytest.mark.asyncio
    async def test_ambiguous_example_with_operation_id(self, spec_dir):
        spec = make_compute_spec()
        spec["paths"]["/other/{vmName}"] = {"get": {
            "operationId": "Other_Get",
            "x-ms-examples": {"Get": {"$ref": "./examples/VirtualMachines_Get.json"}},
        }}
        catalog = OperationCatalog([ApiSpecDocument(path=str(spec_dir / "compute.json"), content=spec)])
        loader = ScenarioLoader(catalog, FileLoader())

        path = write_definition(spec_dir, _definition({
            "step": "get",
            "operationId": "Other_Get",
            "exampleFile": "../examples/VirtualMachines_Get.json",
        }))
        test_def = await loader.load(path)
        step = test_def.test_scenarios[0].get_step("get")
        assert step.operation.operation_id == "Other_Get"
        assert step.example_id == "Get"

    @pytest.mark.asyncio
    async def test_unsupported_template_parameter(self, scenario_loader, spec_dir):
        template = {"parameters": {"count": {"type": "int"}}, "resources": []}
        (spec_dir / "scenarios" / "int_template.json").write_text(json.dumps(template))
        path = write_definition(spec_dir, _definition(
            {"step": "deploy", "armTemplateDeployment": "int_template.json"}))

        with pytest.raises(UnsupportedParameterTypeError, match="count"):
            await scenario_loader.load(path)

    @pytest.mark.asyncio
    async def test_template_parameters_file(self, scenario_loader, spec_dir):
        template = {"parameters": {"count": {"type": "int"}, "name": {"type": "String"}}, "resources": []}
        params = {"parameters": {"count": {"value": 3}}}
        (spec_dir / "scenarios" / "int_template.json").write_text(json.dumps(template))
        (spec_dir / "scenarios" / "int_params.json").write_text(json.dumps(params))
        path = write_definition(spec_dir, _definition({
            "step": "deploy",
            "armTemplateDeployment": "int_template.json",
            "armTemplateParameters": "int_params.json",
        }))

        test_def = await scenario_loader.load(path)
        scenario = test_def.test_scenarios[0]

        assert scenario.get_step("deploy").arm_template_parameters_payload == params
        assert "name" in scenario.required_variables
        assert "count" not in scenario.required_variables

    @pytest.mark.asyncio
    async def test_shared_template_parameter_required_once(self, scenario_loader, spec_dir):
        path = write_definition(spec_dir, _definition(
            {"step": "deploy_first", "armTemplateDeployment": "identity_template.json"},
            {"step": "deploy_second", "armTemplateDeployment": "identity_template.json"},
        ))

        test_def = await scenario_loader.load(path)
        scenario = test_def.test_scenarios[0]

        assert scenario.required_variables == ["subscriptionId", "location", "identityName"]
        assert "identityName" not in test_def.required_variables

    @pytest.mark.asyncio
    async def test_output_variable_requires_pointer(self, scenario_loader, spec_dir):
        path = write_definition(spec_dir, _definition({
            "step": "get_vm",
            "exampleFile": "../examples/VirtualMachines_Get.json",
            "outputVariables": {"vmId": {"value": "/id"}},
        }))
        with pytest.raises(DefinitionError, match="fromResponse"):
            await scenario_loader.load(path)
