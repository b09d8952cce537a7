"""End-to-end tests running definitions over a scripted HTTP service."""

import pytest
import pytest_asyncio

from api_scenario_test.catalog import load_catalog
from api_scenario_test.client import HttpRunnerClient
from api_scenario_test.core import FileLoader, HttpConfig, LroConfig, RunConfig
from api_scenario_test.monitoring import RunMetrics
from api_scenario_test.scenarios import ScenarioLoader, ScenarioRunner, generate_report

from tests.conftest import VM_ID
from tests.mocks import RecordingSleep, ScriptedTransport, json_response

BASE_URL = "https://management.example.com"
RUN_ID = "202401020304-e2e00"
IDENTITY_ID = "/subscriptions/sub/resourceGroups/rg/providers/Microsoft.ManagedIdentity/identities/testIdentity"


@pytest.fixture
def service():
    """Scripted management endpoint for the compute definition."""
    transport = ScriptedTransport()
    transport.add("PUT", "deployments/create_identity", json_response(200, {"properties": {
        "provisioningState": "Succeeded",
        "outputs": {"identityId": {"type": "String", "value": IDENTITY_ID}},
    }}))
    transport.add("PUT", "resourcegroups/", json_response(201, {"name": "rg"}))
    transport.add("DELETE", "resourcegroups/", json_response(200))
    transport.add("PUT", "virtualMachines/myVM",
                  json_response(201, {"properties": {"provisioningState": "Creating"}},
                                headers={"Azure-AsyncOperation": f"{BASE_URL}/operations/create1"}),
                  json_response(200, {"id": VM_ID, "properties": {"provisioningState": "Succeeded"}}))
    transport.add("GET", "operations/create1",
                  json_response(200, {"status": "InProgress"}),
                  json_response(200, {"status": "Succeeded"}))
    transport.add("GET", "virtualMachines/myVM", json_response(200, {"id": VM_ID, "name": "myVM"}))
    transport.add("DELETE", "virtualMachines/myVM", json_response(200))
    return transport


@pytest_asyncio.fixture
async def live_run(service, run_env):
    """Runner wired to an HTTP client over the scripted service."""
    run_env.set("bearerToken", "tok")
    metrics = RunMetrics()
    client = HttpRunnerClient(
        env=run_env,
        http_config=HttpConfig(base_url=BASE_URL),
        lro_config=LroConfig(polling_interval=1),
        transport=service.transport,
        metrics=metrics,
        sleep=RecordingSleep(),
    )
    yield client, metrics
    await client.close()


@pytest.mark.integration
class TestEndToEnd:
    """Load a definition from disk and run it over HTTP."""

    @pytest.mark.asyncio
    async def test_full_definition(self, spec_file, definition_file, service, live_run, run_env):
        client, metrics = live_run
        file_loader = FileLoader()
        catalog = await load_catalog([spec_file], file_loader)
        test_def = await ScenarioLoader(catalog, file_loader).load(definition_file)
        runner = ScenarioRunner(client, run_env, metrics=metrics, run_id=RUN_ID)

        results = await runner.run_definition(test_def)

        result = results[0]
        assert result["status"] == "passed", generate_report(result)
        assert result["steps_successful"] == 5
        assert result["variables"]["vmId"] == VM_ID
        assert result["variables"]["identityId"] == IDENTITY_ID
        assert result["step_results"][1]["polls"] == 2

        methods = [(r.method, r.url.path.rsplit("/", 1)[-1]) for r in service.requests]
        assert methods == [
            ("PUT", f"apiTest-{RUN_ID}"),
            ("PUT", "create_identity"),
            ("PUT", "myVM"),
            ("GET", "create1"),
            ("GET", "create1"),
            ("GET", "myVM"),
            ("PUT", "myVM"),
            ("GET", "myVM"),
            ("DELETE", "myVM"),
            ("DELETE", f"apiTest-{RUN_ID}"),
        ]

        create = service.requests[2]
        assert create.url.params["api-version"] == "2021-01-01"
        assert create.headers["Authorization"] == "Bearer tok"
        create_body = service.body_of(create)
        assert create_body["properties"]["osProfile"]["adminPassword"] == "P@ssw0rd!"
        assert "provisioningState" not in create_body["properties"]

        update_body = service.body_of(service.requests[6])
        assert update_body["properties"]["osProfile"]["adminUsername"] == "newadmin"

        deployment_body = service.body_of(service.requests[1])
        assert deployment_body["properties"]["parameters"] == {
            "identityName": {"value": "testIdentity"},
            "location": {"value": "westus"},
        }

        snapshot = metrics.snapshot()
        assert snapshot["restCall_success"] == 4
        assert snapshot["armTemplateDeployment_success"] == 1
        assert snapshot["lro_polls"] == 2

    @pytest.mark.asyncio
    async def test_service_error_stops_scenario(self, spec_file, definition_file, service, live_run, run_env):
        client, metrics = live_run
        service.routes[("DELETE", "virtualMachines/myVM")] = [
            json_response(409, {"error": {"code": "Conflict"}}),
        ]
        file_loader = FileLoader()
        catalog = await load_catalog([spec_file], file_loader)
        test_def = await ScenarioLoader(catalog, file_loader).load(definition_file)
        runner = ScenarioRunner(client, run_env, metrics=metrics, run_id=RUN_ID)

        results = await runner.run_definition(test_def)

        result = results[0]
        assert result["status"] == "failed"
        failed = result["step_results"][-1]
        assert failed["step_name"] == "delete_vm"
        assert failed["status_code"] == 409
        # The resource group is still removed
        assert service.requests[-1].method == "DELETE"
        assert service.requests[-1].url.path.endswith(f"apiTest-{RUN_ID}")
        assert "Error:" in generate_report(result)

    @pytest.mark.asyncio
    async def test_partial_replay(self, spec_file, definition_file, service, live_run, run_env):
        client, metrics = live_run
        client.run_config = RunConfig(from_step="get_vm")
        run_env.set("resourceGroupName", "existingRg")
        file_loader = FileLoader()
        catalog = await load_catalog([spec_file], file_loader)
        test_def = await ScenarioLoader(catalog, file_loader).load(definition_file)
        runner = ScenarioRunner(client, run_env, run_config=client.run_config, run_id=RUN_ID)

        results = await runner.run_definition(test_def)

        assert results[0]["status"] == "passed"
        assert [(r.method, r.url.path.rsplit("/", 1)[-1]) for r in service.requests] == [
            ("GET", "myVM"),
            ("DELETE", "myVM"),
        ]
        assert "/resourceGroups/existingRg/" in service.requests[0].url.path
