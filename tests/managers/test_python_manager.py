import asyncio
import unittest
from unittest.mock import AsyncMock

from depscope.core.model import ManifestFile
from depscope.core.store import AnalysisStore
from depscope.managers.python import PythonManager


class TestPythonManager(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.manager = PythonManager()
        self.registry = AsyncMock()
        self.registry.latest_pypi_version.return_value = "0.47.1"

    async def test_parse_requirements_simple(self):
        mock_content = """
        requests==2.31.0
        flask>=2.0
        # comment
        textual
        """

        pairs = await self.manager.parse_file(ManifestFile("requirements.txt", mock_content), self.registry)

        self.assertEqual(pairs, [("requests", "2.31.0"), ("flask", "2.0"), ("textual", "0.47.1")])
        self.registry.latest_pypi_version.assert_awaited_once_with("textual")

    async def test_options_extras_and_markers(self):
        mock_content = "\n".join([
            "-r base.txt",
            "--index-url https://example.test/simple",
            "-e git+https://github.com/x/y.git#egg=y",
            "requests[security]==2.25.1 ; python_version >= '3.6'",
            "Django == 4.2.7  # pinned",
            "numpy~=1.26.0",
        ])

        pairs = await self.manager.parse_file(ManifestFile("requirements.txt", mock_content), self.registry)

        self.assertEqual(pairs, [("requests", "2.25.1"), ("Django", "4.2.7"), ("numpy", "1.26.0")])
        self.registry.latest_pypi_version.assert_not_awaited()

    async def test_url_requirements(self):
        mock_content = "\n".join([
            "git+https://github.com/psf/requests.git@v2.31.0#egg=requests",
            "https://example.test/wheels/private-1.0-py3-none-any.whl",
            "mylib @ https://example.test/mylib-1.2.tar.gz",
            "tool[cli] @ git+https://github.com/x/tool.git",
            "click==8.1.7",
        ])

        pairs = await self.manager.parse_file(ManifestFile("requirements.txt", mock_content), self.registry)

        self.assertEqual(pairs, [("mylib", "unknown"), ("tool", "unknown"), ("click", "8.1.7")])
        self.registry.latest_pypi_version.assert_not_awaited()

    async def test_unpinned_lookups_keep_declaration_order(self):
        async def latest(name):
            await asyncio.sleep(0.01 if name == "first" else 0)
            return f"{name}-latest"

        self.registry.latest_pypi_version.side_effect = latest

        pairs = await self.manager.parse_file(ManifestFile("requirements.txt", "first\nattrs==23.1.0\nsecond\n"), self.registry)

        self.assertEqual(pairs, [("first", "first-latest"), ("attrs", "23.1.0"), ("second", "second-latest")])
        self.assertEqual(self.registry.latest_pypi_version.await_count, 2)

    async def test_parse_normalizes_into_store(self):
        store = AnalysisStore()
        files = [
            ManifestFile("requirements.txt", "requests==2.31\n"),
            ManifestFile("dev/requirements.txt", "requests==2.31\n"),
        ]

        count = await self.manager.parse(files, store, self.registry)

        self.assertEqual(count, 2)
        self.assertEqual(list(store.dependencies), ["requests@2.31.0@PyPI"])
        self.assertEqual(store.file_mapping["requests@2.31.0@PyPI"], ["requirements.txt", "dev/requirements.txt"])

    def test_detect_requirements_files(self):
        files = ["main.py", "requirements.txt", "requirements_dev.txt", "README.md"]

        self.assertTrue(self.manager.detect(files))
        self.assertTrue(self.manager.detect(["requirements-dev.txt"]))
        self.assertFalse(self.manager.detect(["setup.py"]))
