from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


class Ecosystem(str, Enum):
    """Package universes, valued with the names OSV expects."""
    NPM = "npm"
    PYPI = "PyPI"
    MAVEN = "Maven"
    RUBYGEMS = "RubyGems"
    COMPOSER = "Packagist"
    PUB = "Pub"
    UNKNOWN = "unknown"

    @property
    def deps_dev_system(self) -> str:
        return _DEPS_DEV_SYSTEMS.get(self, self.value.lower())


_DEPS_DEV_SYSTEMS = {
    Ecosystem.NPM: "npm",
    Ecosystem.PYPI: "pypi",
    Ecosystem.MAVEN: "maven",
    Ecosystem.RUBYGEMS: "rubygems",
    Ecosystem.COMPOSER: "packagist",
    Ecosystem.PUB: "pub",
}

_SYSTEM_ALIASES = {
    "NPM": Ecosystem.NPM,
    "PYPI": Ecosystem.PYPI,
    "MAVEN": Ecosystem.MAVEN,
    "RUBYGEMS": Ecosystem.RUBYGEMS,
    "PHP": Ecosystem.COMPOSER,
    "PACKAGIST": Ecosystem.COMPOSER,
    "COMPOSER": Ecosystem.COMPOSER,
    "PUB": Ecosystem.PUB,
}


def map_ecosystem(system: Optional[str]) -> Ecosystem:
    """Maps a metadata-service system string onto an Ecosystem."""
    if not system:
        return Ecosystem.UNKNOWN
    return _SYSTEM_ALIASES.get(system.strip().upper(), Ecosystem.UNKNOWN)


@dataclass
class SeverityScore:
    cvss_v3: str = "unknown"
    cvss_v4: str = "unknown"


@dataclass
class Vulnerability:
    id: str
    summary: Optional[str] = None
    details: Optional[str] = None
    severity_score: Optional[SeverityScore] = None
    references: List[Dict[str, Any]] = field(default_factory=list)
    affected: List[Dict[str, Any]] = field(default_factory=list)
    fix_available: Optional[str] = None
    aliases: List[str] = field(default_factory=list)

    @property
    def hydrated(self) -> bool:
        return self.severity_score is not None


@dataclass
class Edge:
    source: int
    target: int
    requirement: str = ""


@dataclass
class TransitiveDependency:
    """Index-addressed graph: edges point at positions in `nodes`."""
    nodes: List['Dependency'] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)


@dataclass
class Dependency:
    name: str
    version: str
    ecosystem: Ecosystem
    vulnerabilities: List[Vulnerability] = field(default_factory=list)
    transitive_dependencies: Optional[TransitiveDependency] = None
    dependency_type: Optional[str] = None  # DIRECT | INDIRECT | SELF

    @property
    def key(self) -> str:
        return f"{self.name}@{self.version}@{self.ecosystem.value}"

    @property
    def vulnerable(self) -> bool:
        return len(self.vulnerabilities) > 0


@dataclass
class ManifestFile:
    path: str
    content: str


@dataclass
class Outcome(Generic[T]):
    """Tagged result of a single unit of work: either a value or an error."""
    item: Any
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


DependencyGroups = Dict[str, List[Dependency]]


@dataclass
class AnalysisResult:
    dependencies: DependencyGroups = field(default_factory=dict)
    error: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "dependencies": {
                path: [dependency_to_dict(dep) for dep in deps]
                for path, deps in self.dependencies.items()
            }
        }
        if self.error:
            payload["error"] = list(self.error)
        return payload


def vulnerability_to_dict(vuln: Vulnerability) -> Dict[str, Any]:
    data: Dict[str, Any] = {"id": vuln.id}
    if not vuln.hydrated:
        return data

    data.update({
        "summary": vuln.summary,
        "details": vuln.details,
        "severityScore": {
            "cvss_v3": vuln.severity_score.cvss_v3,
            "cvss_v4": vuln.severity_score.cvss_v4,
        },
        "references": vuln.references,
        "affected": vuln.affected,
        "aliases": vuln.aliases,
        "fixAvailable": vuln.fix_available or "",
    })
    return data


def dependency_to_dict(dep: Dependency) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "name": dep.name,
        "version": dep.version,
        "ecosystem": dep.ecosystem.value,
        "vulnerabilities": [vulnerability_to_dict(v) for v in dep.vulnerabilities],
    }
    if dep.dependency_type:
        data["dependencyType"] = dep.dependency_type
    if dep.transitive_dependencies is not None:
        data["transitiveDependencies"] = {
            "nodes": [dependency_to_dict(n) for n in dep.transitive_dependencies.nodes],
            "edges": [
                {"source": e.source, "target": e.target, "requirement": e.requirement}
                for e in dep.transitive_dependencies.edges
            ],
        }
    return data
