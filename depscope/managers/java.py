import re
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional, Tuple

from depscope.core.model import Ecosystem, ManifestFile
from depscope.core.registry import RegistryClient
from depscope.core.version import UNKNOWN
from depscope.managers.base import ManifestError, PackageManager

re_placeholder = re.compile(r"\$\{([^}]+)\}")


def _local(tag: str) -> str:
    # drop the "{http://maven.apache.org/POM/4.0.0}" namespace prefix
    return tag.rsplit("}", 1)[-1]


def _child(elem: ET.Element, name: str) -> Optional[ET.Element]:
    for child in elem:
        if _local(child.tag) == name:
            return child
    return None


def _text(elem: Optional[ET.Element], name: str) -> str:
    if elem is None:
        return ""
    child = _child(elem, name)
    if child is None or not child.text:
        return ""
    return child.text.strip()


class MavenManager(PackageManager):
    @property
    def name(self) -> str:
        return "Maven"

    @property
    def ecosystem(self) -> Ecosystem:
        return Ecosystem.MAVEN

    @property
    def family(self) -> str:
        return "Maven"

    @property
    def manifest_files(self) -> list[str]:
        return ["pom.xml"]

    async def parse_file(self, manifest: ManifestFile, registry: RegistryClient) -> List[Tuple[str, str]]:
        try:
            root = ET.fromstring(manifest.content)
        except ET.ParseError as e:
            raise ManifestError(f"Error reading pom.xml: {e}")

        if _local(root.tag) != "project":
            raise ManifestError(f"Unexpected root element <{_local(root.tag)}> in pom.xml")

        properties = self._properties(root)

        pairs = []
        dependencies = _child(root, "dependencies")
        for dep in dependencies if dependencies is not None else []:
            if _local(dep.tag) != "dependency":
                continue

            artifact_id = _text(dep, "artifactId")
            if not artifact_id:
                continue
            group_id = self._resolve(_text(dep, "groupId"), properties)

            name = f"{group_id}:{artifact_id}" if group_id and group_id != UNKNOWN else artifact_id
            version = self._resolve(_text(dep, "version"), properties)
            pairs.append((name, version))

        return pairs

    @staticmethod
    def _properties(root: ET.Element) -> Dict[str, str]:
        properties = {}

        props = _child(root, "properties")
        if props is not None:
            for prop in props:
                properties[_local(prop.tag)] = (prop.text or "").strip()

        parent = _child(root, "parent")
        parent_version = _text(parent, "version")
        project_version = _text(root, "version") or parent_version
        if project_version:
            properties.setdefault("project.version", project_version)
            properties.setdefault("version", project_version)
        if parent_version:
            properties.setdefault("project.parent.version", parent_version)

        group_id = _text(root, "groupId") or _text(parent, "groupId")
        if group_id:
            properties.setdefault("project.groupId", group_id)

        return properties

    @staticmethod
    def _resolve(value: str, properties: Dict[str, str]) -> str:
        """Substitutes ${property} placeholders. Any unresolved placeholder gives "unknown"."""
        if not value:
            return UNKNOWN

        unresolved = []

        def substitute(match):
            resolved = properties.get(match.group(1))
            if not resolved or re_placeholder.search(resolved):
                unresolved.append(match.group(1))
                return ""
            return resolved

        resolved = re_placeholder.sub(substitute, value)
        return UNKNOWN if unresolved or not resolved else resolved
