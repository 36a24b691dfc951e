"""Result structs threaded through the fix passes and the validator."""

from typing import Literal

from pydantic import BaseModel, Field

Severity = Literal["error", "warning", "info"]


class FixReport(BaseModel):
    """Counts of changes made, keyed by pass or correction name."""

    counts: dict[str, int] = Field(default_factory=dict)

    def record(self, name: str, n: int = 1) -> None:
        if n:
            self.counts[name] = self.counts.get(name, 0) + n

    @property
    def total(self) -> int:
        return sum(self.counts.values())


class Finding(BaseModel):
    """A single validation result."""

    severity: Severity
    category: str
    location: str
    message: str


class CategoryTally(BaseModel):
    passed: int = 0
    warnings: int = 0
    failures: int = 0


class ValidationReport(BaseModel):
    """Findings plus pass/warn/fail tallies per check category."""

    findings: list[Finding] = Field(default_factory=list)
    tallies: dict[str, CategoryTally] = Field(default_factory=dict)

    def _tally(self, category: str) -> CategoryTally:
        return self.tallies.setdefault(category, CategoryTally())

    def ok(self, category: str) -> None:
        self._tally(category).passed += 1

    def add(self, severity: Severity, category: str, location: str, message: str) -> None:
        self.findings.append(
            Finding(severity=severity, category=category, location=location, message=message)
        )
        tally = self._tally(category)
        if severity == "error":
            tally.failures += 1
        elif severity == "warning":
            tally.warnings += 1
        else:
            tally.passed += 1

    def merge(self, other: "ValidationReport") -> "ValidationReport":
        self.findings.extend(other.findings)
        for category, tally in other.tallies.items():
            mine = self._tally(category)
            mine.passed += tally.passed
            mine.warnings += tally.warnings
            mine.failures += tally.failures
        return self

    def by_category(self, category: str) -> list[Finding]:
        return [f for f in self.findings if f.category == category]

    @property
    def errors(self) -> list[Finding]:
        return [f for f in self.findings if f.severity == "error"]

    @property
    def warnings(self) -> list[Finding]:
        return [f for f in self.findings if f.severity == "warning"]

    @property
    def passed(self) -> bool:
        """True when there are no error-severity findings. Warnings never fail."""
        return not self.errors

    def to_markdown(self, title: str = "Validation Report") -> str:
        lines = [f"# {title}", ""]
        status = "PASSED" if self.passed else "FAILED"
        lines.append(f"**Status**: {status} ({len(self.errors)} errors, {len(self.warnings)} warnings)")
        lines.append("")
        lines.append("| Category | Passed | Warnings | Failures |")
        lines.append("|----------|--------|----------|----------|")
        for category in sorted(self.tallies):
            t = self.tallies[category]
            lines.append(f"| {category} | {t.passed} | {t.warnings} | {t.failures} |")

        for severity, heading in (("error", "Errors"), ("warning", "Warnings")):
            items = [f for f in self.findings if f.severity == severity]
            if not items:
                continue
            lines.extend(["", f"## {heading}", ""])
            for f in items:
                lines.append(f"- `{f.location}` [{f.category}] {f.message}")
        return "\n".join(lines) + "\n"
