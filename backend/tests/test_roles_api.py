import pytest
from sqlalchemy import select

from firepit.db.models import RoleAssignment, ChannelPermissionOverride

pytestmark = pytest.mark.anyio


async def _server_with_manager(seed, manager_position=5):
    owner = await seed.user("owner")
    manager = await seed.user("manager")
    server = await seed.server(owner)
    await seed.member(server, manager)
    manager_role = await seed.role(
        server, "Manager", position=manager_position,
        read_messages=True, send_messages=True, manage_roles=True,
    )
    await seed.assign(server, manager, manager_role)
    return owner, manager, server, manager_role


async def test_owner_creates_role_with_defaults(client, seed, headers_for):
    owner = await seed.user("owner")
    server = await seed.server(owner)

    resp = await client.post(
        "/api/roles/", json={"server_id": server.id, "name": "Member"}, headers=headers_for(owner)
    )
    assert resp.status_code == 201
    role = resp.json()
    assert role["name"] == "Member"
    assert role["color"] == "#5865F2"
    assert role["read_messages"] is True
    assert role["send_messages"] is True
    assert role["administrator"] is False
    assert role["mentionable"] is True


async def test_create_role_requires_manage_roles(client, seed, headers_for):
    owner = await seed.user("owner")
    member = await seed.user("member")
    server = await seed.server(owner)
    await seed.member(server, member)

    resp = await client.post(
        "/api/roles/", json={"server_id": server.id, "name": "Sneaky"}, headers=headers_for(member)
    )
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Missing permission: manageRoles"


async def test_manager_cannot_create_role_at_own_position(client, seed, headers_for):
    owner, manager, server, manager_role = await _server_with_manager(seed)

    resp = await client.post(
        "/api/roles/",
        json={"server_id": server.id, "name": "Peer", "position": 5},
        headers=headers_for(manager),
    )
    assert resp.status_code == 403

    resp = await client.post(
        "/api/roles/",
        json={"server_id": server.id, "name": "Junior", "position": 4},
        headers=headers_for(manager),
    )
    assert resp.status_code == 201


async def test_list_roles_ordered_by_position(client, seed, headers_for):
    owner, manager, server, manager_role = await _server_with_manager(seed)
    await seed.role(server, "Low", position=1)
    await seed.role(server, "Top", position=9)

    resp = await client.get("/api/roles/", params={"server_id": server.id}, headers=headers_for(manager))
    assert resp.status_code == 200
    assert [r["name"] for r in resp.json()] == ["Top", "Manager", "Low"]


async def test_update_role_changes_effective_permissions(client, seed, headers_for):
    owner, manager, server, manager_role = await _server_with_manager(seed)
    member = await seed.user("member")
    await seed.member(server, member)
    member_role = await seed.role(server, "Member", position=1)
    await seed.assign(server, member, member_role)

    resp = await client.get(f"/api/servers/{server.id}/permissions", headers=headers_for(member))
    assert resp.json()["permissions"]["readMessages"] is False

    resp = await client.put(
        f"/api/roles/{member_role.id}", json={"read_messages": True}, headers=headers_for(manager)
    )
    assert resp.status_code == 200
    assert resp.json()["read_messages"] is True

    resp = await client.get(f"/api/servers/{server.id}/permissions", headers=headers_for(member))
    assert resp.json()["permissions"]["readMessages"] is True


async def test_manager_cannot_raise_role_above_self(client, seed, headers_for):
    owner, manager, server, manager_role = await _server_with_manager(seed)
    junior = await seed.role(server, "Junior", position=2)

    resp = await client.put(f"/api/roles/{junior.id}", json={"position": 7}, headers=headers_for(manager))
    assert resp.status_code == 403


async def test_manager_cannot_edit_higher_role(client, seed, headers_for):
    owner, manager, server, manager_role = await _server_with_manager(seed)
    senior = await seed.role(server, "Senior", position=8)

    resp = await client.put(f"/api/roles/{senior.id}", json={"name": "Demoted"}, headers=headers_for(manager))
    assert resp.status_code == 403


async def test_delete_role_removes_assignments_and_overrides(client, seed, headers_for, test_session):
    owner = await seed.user("owner")
    member = await seed.user("member")
    server = await seed.server(owner)
    await seed.member(server, member)
    channel = await seed.channel(server)
    doomed = await seed.role(server, "Doomed", read_messages=True)
    await seed.assign(server, member, doomed)
    await seed.override(channel, role=doomed, allow=["sendMessages"])

    resp = await client.delete(f"/api/roles/{doomed.id}", headers=headers_for(owner))
    assert resp.status_code == 200

    assignments = await test_session.execute(select(RoleAssignment.role_id).where(RoleAssignment.role_id == doomed.id))
    assert assignments.first() is None
    overrides = await test_session.execute(
        select(ChannelPermissionOverride.id).where(ChannelPermissionOverride.role_id == doomed.id)
    )
    assert overrides.first() is None

    resp = await client.get(f"/api/channels/{channel.id}/permissions", headers=headers_for(member))
    assert resp.json()["can_read"] is False


async def test_delete_unknown_role_is_404(client, seed, headers_for):
    owner = await seed.user("owner")
    resp = await client.delete("/api/roles/999", headers=headers_for(owner))
    assert resp.status_code == 404


async def test_assign_and_unassign_role(client, seed, headers_for):
    owner, manager, server, manager_role = await _server_with_manager(seed)
    member = await seed.user("member")
    await seed.member(server, member)
    junior = await seed.role(server, "Junior", position=1, send_messages=True)

    resp = await client.post(
        "/api/role-assignments/",
        json={"server_id": server.id, "user_id": member.id, "role_id": junior.id},
        headers=headers_for(manager),
    )
    assert resp.status_code == 201
    assert resp.json()["role_ids"] == [junior.id]

    resp = await client.get(f"/api/servers/{server.id}/permissions", headers=headers_for(member))
    assert resp.json()["permissions"]["sendMessages"] is True

    resp = await client.get(
        "/api/role-assignments/",
        params={"server_id": server.id, "user_id": member.id},
        headers=headers_for(member),
    )
    assert resp.json()["assignments"] == [{"user_id": member.id, "role_ids": [junior.id]}]

    resp = await client.delete(
        "/api/role-assignments/",
        params={"server_id": server.id, "user_id": member.id, "role_id": junior.id},
        headers=headers_for(manager),
    )
    assert resp.status_code == 200
    assert resp.json()["role_ids"] == []

    resp = await client.get(f"/api/servers/{server.id}/permissions", headers=headers_for(member))
    assert resp.json()["permissions"]["sendMessages"] is False


async def test_manager_cannot_hand_out_own_role(client, seed, headers_for):
    owner, manager, server, manager_role = await _server_with_manager(seed)
    member = await seed.user("member")
    await seed.member(server, member)

    resp = await client.post(
        "/api/role-assignments/",
        json={"server_id": server.id, "user_id": member.id, "role_id": manager_role.id},
        headers=headers_for(manager),
    )
    assert resp.status_code == 403


async def test_assign_to_non_member_rejected(client, seed, headers_for):
    owner = await seed.user("owner")
    stranger = await seed.user("stranger")
    server = await seed.server(owner)
    role = await seed.role(server, "Member")

    resp = await client.post(
        "/api/role-assignments/",
        json={"server_id": server.id, "user_id": stranger.id, "role_id": role.id},
        headers=headers_for(owner),
    )
    assert resp.status_code == 400


async def test_manager_cannot_mint_and_take_admin_role(client, seed, headers_for):
    owner, manager, server, manager_role = await _server_with_manager(seed)

    resp = await client.post(
        "/api/roles/",
        json={"server_id": server.id, "name": "Backdoor", "position": 0, "administrator": True},
        headers=headers_for(manager),
    )
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Cannot grant permissions you do not have: administrator"

    resp = await client.get(f"/api/servers/{server.id}/permissions", headers=headers_for(manager))
    perms = resp.json()["permissions"]
    assert perms["administrator"] is False
    assert perms["manageServer"] is False


async def test_manager_cannot_grant_kinds_they_lack(client, seed, headers_for):
    owner, manager, server, manager_role = await _server_with_manager(seed)
    junior = await seed.role(server, "Junior", position=1)

    resp = await client.post(
        "/api/roles/",
        json={"server_id": server.id, "name": "Janitor", "position": 1, "manage_server": True},
        headers=headers_for(manager),
    )
    assert resp.status_code == 403

    resp = await client.put(f"/api/roles/{junior.id}", json={"administrator": True}, headers=headers_for(manager))
    assert resp.status_code == 403

    resp = await client.put(f"/api/roles/{junior.id}", json={"manage_channels": True}, headers=headers_for(manager))
    assert resp.status_code == 403

    resp = await client.put(f"/api/roles/{junior.id}", json={"send_messages": True}, headers=headers_for(manager))
    assert resp.status_code == 200


async def test_manager_cannot_assign_admin_role_made_by_owner(client, seed, headers_for):
    owner, manager, server, manager_role = await _server_with_manager(seed)
    admin_role = await seed.role(server, "Admins", position=0, administrator=True)

    resp = await client.post(
        "/api/role-assignments/",
        json={"server_id": server.id, "user_id": manager.id, "role_id": admin_role.id},
        headers=headers_for(manager),
    )
    assert resp.status_code == 403

    resp = await client.post(
        "/api/role-assignments/",
        json={"server_id": server.id, "user_id": manager.id, "role_id": admin_role.id},
        headers=headers_for(owner),
    )
    assert resp.status_code == 201


async def test_administrator_can_grant_any_other_kind(client, seed, headers_for):
    owner = await seed.user("owner")
    admin = await seed.user("admin")
    server = await seed.server(owner)
    await seed.member(server, admin)
    admin_role = await seed.role(server, "Admins", position=5, administrator=True)
    await seed.assign(server, admin, admin_role)

    resp = await client.post(
        "/api/roles/",
        json={
            "server_id": server.id,
            "name": "Staff",
            "position": 1,
            "manage_server": True,
            "manage_roles": True,
        },
        headers=headers_for(admin),
    )
    assert resp.status_code == 201
