"""Tests for wpdock.registry.sites — JSON and in-memory site registries."""

import json

import pytest

from wpdock.registry.sites import (
    DuplicateSiteError,
    JsonSiteRegistry,
    MemorySiteRegistry,
    RegistryCorruptError,
    Site,
    SiteStatus,
)


@pytest.fixture(params=["json", "memory"])
def registry(request, tmp_path):
    if request.param == "json":
        return JsonSiteRegistry(str(tmp_path / "sites.json"))
    return MemorySiteRegistry()


# ── Site ────────────────────────────────────────────────────────


def test_site_to_dict_uses_wire_keys(make_site):
    data = make_site("demo", port=8100).to_dict()

    assert data == {
        "projectName": "demo",
        "wpPort": 8100,
        "dbName": "demo_db",
        "dbPassword": "DbPassw0rdXYZ123",
        "siteURL": "http://203.0.113.10:8100",
        "plugins": [],
        "status": "active",
        "adminUsername": "admin",
        "adminPassword": "SiteAdminPass1",
        "lastChecked": "",
    }


def test_site_from_dict_tolerates_older_records():
    site = Site.from_dict({
        "projectName": "old",
        "wpPort": 8080,
        "dbName": "old_db",
        "dbPassword": "pw",
        "siteURL": "http://1.2.3.4:8080",
        "plugins": None,
        "status": "active",
    })

    assert site.plugins == []
    assert site.status == SiteStatus.ACTIVE
    assert site.admin_username == ""
    assert site.last_checked == ""


def test_site_repr_hides_passwords(make_site):
    text = repr(make_site())
    assert "DbPassw0rdXYZ123" not in text
    assert "SiteAdminPass1" not in text


# ── registry operations ─────────────────────────────────────────


async def test_empty_registry(registry):
    assert await registry.list_sites() == []
    assert await registry.get_site("demo") is None


async def test_add_and_get(registry, make_site):
    await registry.add_site(make_site("demo"))

    site = await registry.get_site("demo")
    assert site.project_name == "demo"
    assert [s.project_name for s in await registry.list_sites()] == ["demo"]


async def test_add_duplicate_rejected(registry, make_site):
    await registry.add_site(make_site("demo"))

    with pytest.raises(DuplicateSiteError):
        await registry.add_site(make_site("demo", port=8101))

    assert len(await registry.list_sites()) == 1


async def test_upsert_replaces_in_place(registry, make_site):
    await registry.add_site(make_site("demo"))
    await registry.add_site(make_site("demo2", port=8101))

    await registry.upsert_site(make_site("demo", plugins=["akismet"]))

    sites = await registry.list_sites()
    assert [s.project_name for s in sites] == ["demo", "demo2"]
    assert sites[0].plugins == ["akismet"]


async def test_remove(registry, make_site):
    await registry.add_site(make_site("demo"))

    assert await registry.remove_site("demo") is True
    assert await registry.remove_site("demo") is False
    assert await registry.list_sites() == []


async def test_update_status_sets_last_checked(registry, make_site):
    await registry.add_site(make_site("demo", status=SiteStatus.CREATING))

    updated = await registry.update_status("demo", SiteStatus.FAILED)

    assert updated.status == SiteStatus.FAILED
    assert updated.last_checked
    assert (await registry.get_site("demo")).status == SiteStatus.FAILED


async def test_update_status_unknown_site(registry):
    assert await registry.update_status("ghost", SiteStatus.ACTIVE) is None


async def test_update_plugins_adds_and_removes(registry, make_site):
    await registry.add_site(make_site("demo", status=SiteStatus.DOWN, plugins=["akismet"]))

    await registry.update_plugins("demo", add="woocommerce")
    await registry.update_plugins("demo", add="woocommerce")
    updated = await registry.update_plugins("demo", remove="akismet")

    assert updated.plugins == ["woocommerce"]
    stored = await registry.get_site("demo")
    assert stored.plugins == ["woocommerce"]
    assert stored.status == SiteStatus.DOWN


async def test_update_plugins_unknown_site(registry):
    assert await registry.update_plugins("ghost", add="akismet") is None
    assert await registry.list_sites() == []


async def test_returned_sites_are_copies(registry, make_site):
    await registry.add_site(make_site("demo"))

    site = await registry.get_site("demo")
    site.plugins.append("mutated")

    assert (await registry.get_site("demo")).plugins == []


# ── JSON persistence ────────────────────────────────────────────


async def test_json_file_format(tmp_path, make_site):
    path = tmp_path / "sites.json"
    registry = JsonSiteRegistry(str(path))

    await registry.add_site(make_site("demo"))

    raw = path.read_text()
    assert raw.startswith("[\n  {")
    assert json.loads(raw)[0]["projectName"] == "demo"
    assert [p.name for p in tmp_path.iterdir()] == ["sites.json"]


async def test_json_empty_file_means_no_sites(tmp_path):
    path = tmp_path / "sites.json"
    path.write_text("")

    assert await JsonSiteRegistry(str(path)).list_sites() == []


async def test_json_corrupt_file(tmp_path):
    path = tmp_path / "sites.json"
    path.write_text("[{not json")

    with pytest.raises(RegistryCorruptError, match="Corrupt site registry") as exc_info:
        await JsonSiteRegistry(str(path)).list_sites()

    assert exc_info.value.path == str(path)
    assert not isinstance(exc_info.value, ValueError)


@pytest.mark.parametrize("content", ['{"projectName": "demo"}', '[{"projectName": "demo"}]', '["demo"]'])
async def test_json_malformed_records(tmp_path, content):
    path = tmp_path / "sites.json"
    path.write_text(content)

    with pytest.raises(RegistryCorruptError):
        await JsonSiteRegistry(str(path)).get_site("demo")


async def test_json_survives_new_instance(tmp_path, make_site):
    path = str(tmp_path / "sites.json")
    await JsonSiteRegistry(path).add_site(make_site("demo"))

    site = await JsonSiteRegistry(path).get_site("demo")

    assert site.db_password == "DbPassw0rdXYZ123"
