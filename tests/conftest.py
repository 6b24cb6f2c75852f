"""
Shared fixtures for dep-bumper tests.
"""

import json
import os
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from urllib.parse import unquote

import httpx
import pytest

from dep_bumper.cli_config import reset_config

_EPOCH = datetime(2016, 1, 1, tzinfo=timezone.utc)


def make_packument(name, versions, latest, repository=None, version_repos=None, with_time=True):
    """
    Build a registry packument.

    ``versions`` is listed in publish order; each one is published 30 days
    after the previous.
    """
    data = {"name": name, "dist-tags": {"latest": latest}, "versions": {}}
    if repository is not None:
        data["repository"] = repository

    times = {"created": _EPOCH.isoformat().replace("+00:00", "Z")}
    for index, version in enumerate(versions):
        meta = {"name": name, "version": version}
        repo = (version_repos or {}).get(version, repository)
        if repo is not None:
            meta["repository"] = repo
        data["versions"][version] = meta
        published = _EPOCH + timedelta(days=30 * (index + 1))
        times[version] = published.isoformat().replace("+00:00", "Z")

    if with_time:
        data["time"] = times
    return data


FIXTURE_PACKAGE_JSON = {
    "dependencies": {
        "gulp-sourcemaps": "2.0.0",
        "prismjs": "1.0.0",
        "svgstore": "^3.0.0",
        "html-webpack-plugin": "4.0.0-alpha.2",
        "noty": "3.1.0",
        "jpeg-buffer-orientation": "0.0.0",
        "styled-components": "2.5.0-1",
        "@babel/preset-env": "7.0.0",
    },
    "peerDependencies": {
        "@babel/preset-env": "~6.0.0",
    },
}


def build_registry_packuments():
    babel_repo = {
        "type": "git",
        "url": "https://github.com/babel/babel/tree/master/packages/babel-preset-env",
    }
    return {
        "gulp-sourcemaps": make_packument(
            "gulp-sourcemaps",
            ["1.6.0", "2.0.0", "2.0.1", "2.6.5"],
            "2.6.5",
            repository={"type": "git", "url": "git+https://github.com/gulp-sourcemaps/gulp-sourcemaps.git"},
            version_repos={
                "1.6.0": "git://github.com/floridoo/gulp-sourcemaps.git",
                "2.0.0": "git://github.com/floridoo/gulp-sourcemaps.git",
                "2.0.1": "git://github.com/floridoo/gulp-sourcemaps.git",
            },
        ),
        "prismjs": make_packument(
            "prismjs", ["1.0.0", "1.17.1"], "1.17.1",
            repository="https://github.com/LeaVerou/prism.git",
        ),
        "svgstore": make_packument(
            "svgstore", ["2.0.3", "3.0.0-1", "3.0.0-2"], "3.0.0-2",
            repository={"type": "git", "url": "https://github.com/svgstore/svgstore"},
        ),
        "html-webpack-plugin": make_packument(
            "html-webpack-plugin",
            ["2.30.1", "4.0.0-alpha.2", "3.2.0", "4.0.0-beta.11"],
            "3.2.0",
            repository="jantimon/html-webpack-plugin",
        ),
        "noty": make_packument(
            "noty",
            ["3.1.0", "3.1.1", "3.1.2", "3.1.3", "3.1.4", "3.2.0-beta"],
            "3.2.0-beta",
            repository={"type": "git", "url": "git+https://github.com/needim/noty.git"},
        ),
        "jpeg-buffer-orientation": make_packument(
            "jpeg-buffer-orientation", ["1.0.0", "2.0.3"], "2.0.3",
            repository="https://github.com/fisker/jpeg-buffer-orientation",
        ),
        "styled-components": make_packument(
            "styled-components", ["2.5.0-1", "4.4.1", "5.0.0-rc.2"], "4.4.1",
            repository="git+https://github.com/styled-components/styled-components.git",
        ),
        "@babel/preset-env": make_packument(
            "@babel/preset-env", ["7.0.0", "7.7.6"], "7.7.6", repository=babel_repo,
        ),
    }


def registry_handler(packuments, requests=None, failing=()):
    """httpx.MockTransport handler serving ``packuments`` by package name."""

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        name = unquote(request.url.raw_path.decode("ascii").lstrip("/"))
        if name in failing or name not in packuments:
            return httpx.Response(404, json={"error": "Not found"})
        return httpx.Response(200, json=packuments[name])

    return handler


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Keep user configuration and environment out of every test."""
    for key in list(os.environ):
        if key.startswith("DEP_BUMPER_") or key.lower().startswith("npm_config_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.setenv("NPM_CONFIG_USERCONFIG", str(tmp_path / "missing-npmrc"))
    monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path / "home"))
    reset_config()
    yield
    reset_config()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path)


@pytest.fixture
def registry_packuments():
    return build_registry_packuments()


@pytest.fixture
def sample_package_json(temp_dir):
    """Write the fixture manifest with two-space indentation."""
    path = temp_dir / "package.json"
    path.write_text(json.dumps(FIXTURE_PACKAGE_JSON, indent=2) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def registry_transport(registry_packuments):
    return httpx.MockTransport(registry_handler(registry_packuments))
