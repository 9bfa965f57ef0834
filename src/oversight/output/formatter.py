"""Output formatting using Rich for terminal output."""

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

from oversight.engine.accountability import TaskProcessingResult

OVERSIGHT_THEME = Theme(
    {
        "status.approved": "green bold",
        "status.blocked": "yellow bold",
        "status.error": "red bold",
        "success": "green",
        "error": "red bold",
        "warning": "yellow",
        "info": "blue",
        "metadata": "dim",
    }
)

TREND_ARROWS = {"up": "↑", "down": "↓", "stable": "→"}


class OutputFormatter:
    """Handles all output formatting for oversight."""

    def __init__(self, color: bool = True, verbose: bool = False) -> None:
        self.console = Console(theme=OVERSIGHT_THEME, force_terminal=color, no_color=not color)
        self.verbose = verbose

    def print_error(self, message: str) -> None:
        """Print an error message."""
        self.console.print(f"[error]Error: {message}[/error]")

    def print_success(self, message: str) -> None:
        """Print a success message."""
        self.console.print(f"[success]{message}[/success]")

    def print_info(self, message: str) -> None:
        """Print an info message."""
        self.console.print(f"[info]{message}[/info]")

    def print_warning(self, message: str) -> None:
        """Print a warning message."""
        self.console.print(f"[warning]{message}[/warning]")

    def print_json(self, data: Any) -> None:
        """Print data as unwrapped JSON so it stays machine readable."""
        self.console.out(json.dumps(data, indent=2, default=str), highlight=False)

    def print_task_result(self, result: TaskProcessingResult) -> None:
        """Print the outcome of one processed task."""
        style = f"status.{result.status}"
        lines = [f"[{style}]{result.status.upper()}[/{style}]  task {result.task_id}"]

        if result.verification:
            record = result.verification
            lines.append(
                f"Verification: {record.score:.3f} (threshold {record.threshold}, mode {record.mode})"
            )
        if result.rating_update:
            update = result.rating_update
            lines.append(
                f"Rating: {update.previous_rating:.0f} -> {update.new_rating:.0f} "
                f"({update.delta:+.1f}) [{update.performance_class}]"
            )
        if result.sprint_compliance:
            lines.append(f"Sprint compliance: {result.sprint_compliance.overall_compliance:.2f}")
        if result.error:
            lines.append(f"[error]{result.error}[/error]")

        self.console.print(Panel("\n".join(lines), title=result.agent_id, border_style=style))

        if result.verification:
            self.print_checks(result.verification.checks)
            for item in result.verification.guidance:
                self.console.print(f"  • {item}")

        suggestions = result.improvements.get("solutions", [])
        if suggestions:
            self.console.print("[info]Suggested alternatives:[/info]")
            for score, solution in zip(result.improvements.get("scores", []), suggestions):
                self.console.print(f"  {score:.2f}  {solution['name']}")

    def print_checks(self, checks: dict) -> None:
        table = Table(title="Verification Checks")
        table.add_column("Check", style="cyan")
        table.add_column("Score", justify="right")
        table.add_column("Passed", justify="center")

        for name, check in checks.items():
            passed = "[success]yes[/success]" if check.passed else "[error]no[/error]"
            table.add_row(name, f"{check.score:.3f}", passed)

        self.console.print(table)

    def print_leaderboard(self, performers: list[dict]) -> None:
        table = Table(title="Top Performers")
        table.add_column("#", justify="right")
        table.add_column("Agent", style="cyan")
        table.add_column("Rating", justify="right")
        table.add_column("Class")

        for position, performer in enumerate(performers, start=1):
            table.add_row(
                str(position),
                performer["agent_id"],
                f"{performer['rating']:.0f}",
                performer["performance_class"],
            )

        self.console.print(table)

    def print_agent(self, stats: dict, recommendations: dict) -> None:
        table = Table(title=f"Agent {stats['agent_id']}")
        table.add_column("Property", style="cyan")
        table.add_column("Value")

        table.add_row("Rating", f"{stats['current_rating']:.0f}")
        table.add_row("Class", stats["performance_class"])
        table.add_row("Total tasks", str(stats["total_tasks"]))
        table.add_row(
            "Trending",
            f"{TREND_ARROWS[stats['trending']]} {stats['trending']} "
            f"({stats['recent_avg_rating_change']:+.1f})",
        )
        self.console.print(table)

        for item in recommendations["recommendations"]:
            self.console.print(f"  • {item}")

    def print_stats(self, stats: dict[str, Any], failures: dict[str, Any] | None = None) -> None:
        table = Table(title="Engine Stats")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")

        for key, value in stats["engine"].items():
            table.add_row(key.replace("_", " "), str(value))

        verification = stats["verification"]
        table.add_row("verification mode", verification["mode"])
        table.add_row("verification success rate", f"{verification['success_rate'] * 100:.1f}%")
        table.add_row("rollbacks", str(verification["rollbacks"]))
        table.add_row("agents", str(stats["agents"]))
        if failures is not None:
            table.add_row("logged failures", str(failures["total_failures"]))

        self.console.print(table)


# Global formatter instance
_formatter: OutputFormatter | None = None


def get_formatter(color: bool = True, verbose: bool = False) -> OutputFormatter:
    """Get or create the global formatter instance."""
    global _formatter
    if _formatter is None:
        _formatter = OutputFormatter(color=color, verbose=verbose)
    return _formatter


def reset_formatter() -> None:
    """Drop the global formatter instance."""
    global _formatter
    _formatter = None
