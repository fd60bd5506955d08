import logging
from typing import List

from rich.markup import escape
from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.css.query import NoMatches
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import Footer, Header, Label, LoadingIndicator, Markdown, Tree

from depscope.__version__ import __version__
from depscope.core.analysis import DependencyAnalyzer
from depscope.core.config import Settings
from depscope.core.model import AnalysisResult, Dependency, Vulnerability
from depscope.core.progress import ProgressReporter

# Log Configuration
logging.basicConfig(
    filename="debug.log",
    level=logging.DEBUG,
    filemode="w",
    format="%(asctime)s - %(levelname)s - %(message)s",
)

STEP_LABELS = {
    "PARSING_MANIFESTS": "Collecting manifest files",
    "PARSING_DEPENDENCIES": "Parsing dependencies",
    "FETCHING_TRANSITIVE_DEPENDENCIES": "Resolving transitive dependencies",
    "FETCHING_VULNERABILTIES_ID": "Scanning for vulnerabilities",
    "FETCHING_VULNERABILTIES_DETAILS": "Fetching vulnerability details",
    "FINALISING_RESULTS": "Finalising results",
}


class VulnerabilityScreen(ModalScreen):
    """Modal to display vulnerability details in a clean view."""

    DEFAULT_CSS = """
    VulnerabilityScreen {
        align: center middle;
    }
    #report {
        width: 90%;
        height: 90%;
        border: round $error;
        background: $panel;
    }
    #report-title {
        width: 100%;
        padding: 0 1;
        background: $error-darken-1;
        text-style: bold;
    }
    #report-body {
        height: 1fr;
        padding: 0 1;
    }
    """

    BINDINGS = [Binding("escape", "dismiss", "Close")]

    def __init__(self, dependency: Dependency) -> None:
        super().__init__()
        self.dependency = dependency

    def compose(self) -> ComposeResult:
        dep = self.dependency
        with Vertical(id="report"):
            yield Label(f"{escape(dep.name)} {escape(dep.version)} ({dep.ecosystem.value})  [dim]esc to close[/]", id="report-title")
            with VerticalScroll(id="report-body"):
                yield Markdown(build_report(dep.vulnerabilities))


def build_report(vulns: List[Vulnerability]) -> str:
    md_output = []

    for vuln in vulns:
        summary = vuln.summary or _summary_fallback(vuln)
        details = vuln.details or "_No technical details provided._"

        md_output.append(f"# (X) {vuln.id}\n")
        md_output.append(f"**{summary}**\n")

        if vuln.severity_score:
            md_output.append(
                f"- **CVSS v3**: {vuln.severity_score.cvss_v3}\n"
                f"- **CVSS v4**: {vuln.severity_score.cvss_v4}"
            )
        md_output.append(f"- **Fixed in**: {vuln.fix_available or 'no fix published'}")
        if vuln.aliases:
            md_output.append(f"- **Aliases**: {', '.join(vuln.aliases)}")
        md_output.append("")

        md_output.append(f"{details}\n")
        md_output.append("### Links\n")

        osv_url = f"https://osv.dev/vulnerability/{vuln.id}"
        md_output.append(f"- **OSV Database**: [{osv_url}]({osv_url})")

        for ref in vuln.references:
            url = ref.get("url", "#")
            rtype = ref.get("type", "Link").title()
            if url != osv_url:
                md_output.append(f"- **{rtype}**: [{url}]({url})")

        md_output.append("\n---\n")

    if not md_output:
        return "No vulnerability data found."

    return "\n".join(md_output)


def _summary_fallback(vuln: Vulnerability) -> str:
    if vuln.details:
        return f"{vuln.details[:100]}..."
    return "No description available."


class DepscopeApp(App):
    TITLE = "depscope"
    SUB_TITLE = f"v{__version__}"

    DEFAULT_CSS = """
    #summary {
        height: 1;
        dock: top;
        background: $boost;
    }
    #summary Label { width: auto; margin: 0 2 0 0; }
    #progress-pane { height: 1fr; align: center middle; }
    #dep-tree { height: 1fr; display: none; }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("r", "rescan", "Rescan"),
    ]

    def __init__(self, path: str = ".") -> None:
        super().__init__()
        self.path = path
        self.file_count = 0
        self.vuln_deps = 0
        self.vuln_ids = 0
        self.issue_count = 0

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal(id="summary"):
            yield Label(f"[cyan]{escape(self.path)}[/]")
            yield Label("", id="counts")
        with Vertical(id="progress-pane"):
            yield LoadingIndicator()
            yield Label("Starting...", id="status-label")
        yield Tree("Root", id="dep-tree")
        yield Footer()

    def on_mount(self) -> None:
        self.scan_project()

    def action_rescan(self) -> None:
        self.query_one("#dep-tree").display = False
        self.query_one("#progress-pane").display = True
        self.query_one(LoadingIndicator).display = True
        self.scan_project()

    def on_tree_node_selected(self, event: Tree.NodeSelected) -> None:
        dep = event.node.data
        if isinstance(dep, Dependency) and dep.vulnerable:
            self.push_screen(VulnerabilityScreen(dep))
        elif isinstance(dep, Dependency):
            self.notify("Only its transitive dependencies are vulnerable.", severity="information")

    def update_progress(self, step: str, progress: float) -> None:
        label = STEP_LABELS.get(step, step)
        self.update_status(f"{label}... ({progress:.0f}%)")

    def update_status(self, msg: str) -> None:
        # progress can still arrive while the app shuts down
        try:
            self.query_one("#status-label", Label).update(msg)
        except NoMatches:
            pass

    def update_counts(self) -> None:
        self.query_one("#counts", Label).update(
            f"files [b]{self.file_count}[/]  at risk [b red]{self.vuln_deps}[/]  "
            f"vulns [b red]{self.vuln_ids}[/]  issues [b yellow]{self.issue_count}[/]"
        )

    def show_error(self, message: str) -> None:
        self.query_one("#status-label", Label).update(f"[bold red]Analysis failed:[/]\n{escape(message)}")
        self.query_one(LoadingIndicator).display = False

    @work(exclusive=True)
    async def scan_project(self) -> None:
        logging.info("Worker started.")
        self.update_status("Detecting project...")

        progress = ProgressReporter()
        progress.add_callback(self.update_progress)

        try:
            analyzer = DependencyAnalyzer(Settings.from_env(), progress=progress)
        except ValueError as e:
            self.show_error(str(e))
            return

        result = await analyzer.analyse_directory(self.path)

        if not result.dependencies and result.error:
            self.show_error("\n".join(result.error))
            return

        self.summarise(result)
        self.update_counts()
        self.render_tree(result)

        for message in result.error or []:
            self.notify(message, severity="warning", timeout=10)

    def summarise(self, result: AnalysisResult) -> None:
        ids = set()
        at_risk = set()
        for deps in result.dependencies.values():
            for dep in deps:
                at_risk.add(dep.key)
                ids.update(v.id for v in dep.vulnerabilities)
                if dep.transitive_dependencies:
                    for node in dep.transitive_dependencies.nodes:
                        ids.update(v.id for v in node.vulnerabilities)

        self.file_count = len(result.dependencies)
        self.vuln_deps = len(at_risk)
        self.vuln_ids = len(ids)
        self.issue_count = len(result.error or [])

    def render_tree(self, result: AnalysisResult) -> None:
        tree = self.query_one("#dep-tree")
        tree.clear()
        tree.root.label = f"📂 {escape(self.path)}"
        tree.root.expand()

        if not result.dependencies:
            tree.root.add_leaf("[green]No vulnerable dependencies found.[/]")

        for path, deps in result.dependencies.items():
            file_node = tree.root.add(f"📄 {escape(path)} [dim]↳[/] {len(deps)}", expand=True)
            for dep in deps:
                dep_node = file_node.add(dependency_label(dep), data=dep)
                graph = dep.transitive_dependencies
                if not graph:
                    continue
                for node in graph.nodes:
                    # the SELF node is the dependency itself
                    if node.dependency_type == "SELF" or not node.vulnerable:
                        continue
                    dep_node.add_leaf(dependency_label(node), data=node)

        self.query_one("#progress-pane").display = False
        tree.display = True
        tree.focus()


def dependency_label(dep: Dependency) -> str:
    safe_name = escape(dep.name)
    safe_ver = escape(dep.version)

    child_count = 0
    if dep.transitive_dependencies:
        child_count = sum(
            1 for n in dep.transitive_dependencies.nodes if n.vulnerable and n.dependency_type != "SELF"
        )
    count_suffix = f" [dim]↳[/] {child_count}" if child_count else ""

    if dep.vulnerable:
        first_id = escape(dep.vulnerabilities[0].id)
        info = f"{len(dep.vulnerabilities)} vulns (e.g. {first_id})"
        return f"[bold red](!) {safe_name}[/] [dim]{safe_ver}[/] [red]({info})[/]{count_suffix}"
    return f"[yellow](•) {safe_name}[/] [dim]{safe_ver}[/]{count_suffix}"
