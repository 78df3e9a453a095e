"""Workspace and action endpoint tests."""

from __future__ import annotations

from httpx import AsyncClient


async def _create_workspace(client: AsyncClient, name: str = "Main") -> dict:
    resp = await client.post("/api/workspaces/create", json={"name": name, "root_path": "/src/main"})
    assert resp.status_code == 201
    return resp.json()


async def _create_action(client: AsyncClient, workspace_id: int, name: str, **fields: object) -> dict:
    body = {"workspace_id": workspace_id, "name": name, "action_type": "command", "config": {"command": "true"}}
    body.update(fields)
    resp = await client.post("/api/actions/create", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# Workspaces
# ---------------------------------------------------------------------------


async def test_workspace_crud(client: AsyncClient) -> None:
    created = await _create_workspace(client)
    assert created["name"] == "Main"
    assert created["action_ids"] == []
    assert created["created_at"] is not None

    resp = await client.post(f"/api/workspaces/{created['id']}/update", json={"description": "Daily setup"})
    assert resp.status_code == 200
    assert resp.json()["description"] == "Daily setup"
    assert resp.json()["name"] == "Main"

    resp = await client.get("/api/workspaces/list")
    assert [w["id"] for w in resp.json()] == [created["id"]]

    resp = await client.post(f"/api/workspaces/{created['id']}/delete")
    assert resp.status_code == 204
    assert (await client.get(f"/api/workspaces/{created['id']}/get")).status_code == 404


async def test_workspace_not_found(client: AsyncClient) -> None:
    assert (await client.get("/api/workspaces/999/get")).status_code == 404
    assert (await client.post("/api/workspaces/999/update", json={"name": "x"})).status_code == 404
    assert (await client.post("/api/workspaces/999/delete")).status_code == 404


async def test_workspace_lists_action_ids_in_launch_order(client: AsyncClient) -> None:
    workspace = await _create_workspace(client)
    later = await _create_action(client, workspace["id"], "later", order_index=5)
    earlier = await _create_action(client, workspace["id"], "earlier", order_index=1)

    resp = await client.get(f"/api/workspaces/{workspace['id']}/get")
    assert resp.json()["action_ids"] == [earlier["id"], later["id"]]


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


async def test_action_crud(client: AsyncClient) -> None:
    workspace = await _create_workspace(client)
    first = await _create_action(client, workspace["id"], "first")
    second = await _create_action(client, workspace["id"], "second")
    assert (first["order_index"], second["order_index"]) == (0, 1)
    assert first["detached"] is False

    resp = await client.post(
        f"/api/actions/{first['id']}/update", json={"order_index": 9, "config": {"command": "echo", "args": ["x"]}}
    )
    assert resp.status_code == 200
    assert resp.json()["config"] == {"command": "echo", "args": ["x"]}

    resp = await client.get("/api/actions/list", params={"workspace_id": workspace["id"]})
    assert [a["name"] for a in resp.json()] == ["second", "first"]

    assert (await client.post(f"/api/actions/{first['id']}/delete")).status_code == 204
    assert (await client.get(f"/api/actions/{first['id']}/get")).status_code == 404


async def test_action_requires_existing_workspace(client: AsyncClient) -> None:
    resp = await client.post(
        "/api/actions/create",
        json={"workspace_id": 999, "name": "x", "action_type": "command", "config": {"command": "true"}},
    )
    assert resp.status_code == 404


async def test_tool_action_requires_tool(client: AsyncClient) -> None:
    workspace = await _create_workspace(client)

    resp = await client.post(
        "/api/actions/create",
        json={"workspace_id": workspace["id"], "name": "editor", "action_type": "tool", "config": {}},
    )
    assert resp.status_code == 422

    resp = await client.post(
        "/api/actions/create",
        json={"workspace_id": workspace["id"], "name": "editor", "action_type": "tool", "tool_id": 42},
    )
    assert resp.status_code == 404


async def test_actions_list_requires_workspace(client: AsyncClient) -> None:
    assert (await client.get("/api/actions/list")).status_code == 422


async def test_deleting_workspace_removes_its_actions(client: AsyncClient) -> None:
    workspace = await _create_workspace(client)
    action = await _create_action(client, workspace["id"], "doomed")

    await client.post(f"/api/workspaces/{workspace['id']}/delete")
    assert (await client.get(f"/api/actions/{action['id']}/get")).status_code == 404


async def test_action_lifecycle_fields(client: AsyncClient) -> None:
    workspace = await _create_workspace(client)
    action = await _create_action(
        client,
        workspace["id"],
        "server",
        detached=True,
        timeout_seconds=60,
        auto_launch=True,
        os_overrides={"windows": {"command": "server.exe"}},
    )
    assert action["track_process"] is True
    assert action["timeout_seconds"] == 60
    assert action["auto_launch"] is True
    assert action["os_overrides"] == {"windows": {"command": "server.exe"}}

    resp = await client.post(f"/api/actions/{action['id']}/update", json={"auto_launch": False, "track_process": False})
    assert resp.json()["auto_launch"] is False
    assert resp.json()["track_process"] is False
    assert resp.json()["timeout_seconds"] == 60


async def test_action_lifecycle_field_validation(client: AsyncClient) -> None:
    workspace = await _create_workspace(client)
    base = {"workspace_id": workspace["id"], "name": "x", "action_type": "command", "config": {"command": "true"}}

    assert (await client.post("/api/actions/create", json={**base, "timeout_seconds": 0})).status_code == 422
    resp = await client.post("/api/actions/create", json={**base, "os_overrides": {"beos": {"command": "x"}}})
    assert resp.status_code == 422
