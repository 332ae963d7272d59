"""Feedback formatting: severity buckets and their text, Markdown and JSON renderings."""
from __future__ import annotations

from typing import Any, Iterable

import yaml

from .models import SEVERITIES, Finding, Report
from .registry import RuleRegistry

BUCKET_TITLES = {
    "blocking": "Required Changes (Blocking)",
    "suggested": "Suggested Improvements (Non-blocking)",
    "positive": "Positive Feedback",
}


class FormatError(Exception):
    """Raised when a finding cannot be placed in a feedback bucket."""

    def __init__(self, rule_id: str, message: str) -> None:
        super().__init__(f"rule {rule_id}: {message}")
        self.rule_id = rule_id


class FeedbackFormatter:
    """Partitions findings into Blocking / Suggested / Positive buckets."""

    def format(self, findings: Iterable[Finding]) -> Report:
        buckets: dict[str, list[Finding]] = {s: [] for s in SEVERITIES}
        for finding in findings:
            if finding.severity not in buckets:
                raise FormatError(finding.rule_id, f"unknown severity '{finding.severity}'")
            buckets[finding.severity].append(finding)
        return Report(
            blocking=tuple(buckets["blocking"]),
            suggested=tuple(buckets["suggested"]),
            positive=tuple(buckets["positive"]),
        )


def report_to_dict(report: Report) -> dict[str, Any]:
    return {severity: [f.to_dict() for f in report.bucket(severity)] for severity in SEVERITIES}


def render_text(report: Report) -> str:
    lines: list[str] = []
    for severity in SEVERITIES:
        for finding in report.bucket(severity):
            lines.append(f"[{severity.upper()}] {finding.rule_id}: {finding.title}")
            lines.append(f"  {finding.location}  {finding.message}")
            for ev in finding.evidence[1:]:
                lines.append(f"  - also {ev.location}  ({ev.kind})")
            lines.append("")
    return "\n".join(lines).rstrip("\n")


def render_markdown(report: Report) -> str:
    lines: list[str] = []
    for severity in SEVERITIES:
        lines.append(f"## {BUCKET_TITLES[severity]}")
        lines.append("")
        bucket = report.bucket(severity)
        if not bucket:
            lines.append("_None._")
        for i, finding in enumerate(bucket, start=1):
            where = f"`{finding.location}`"
            if finding.location.symbol:
                where += f" (`{finding.location.symbol}`)"
            lines.append(f"{i}. **{finding.rule_id}** {finding.title}: {where}")
            lines.append(f"   {finding.message}")
        lines.append("")
    return "\n".join(lines).rstrip("\n") + "\n"


def render_checklist(registry: RuleRegistry) -> str:
    """Render the registry as a Markdown checklist document with YAML front matter."""
    front = yaml.safe_dump(
        {"name": registry.name, "description": registry.description},
        sort_keys=False,
        width=88,
    )
    lines = ["---", front.rstrip("\n"), "---", ""]
    if registry.name:
        lines += [f"# {registry.name}", ""]

    for number, section in enumerate(registry.sections, start=1):
        lines.append(f"## {number}. {section.title}")
        lines.append("")
        for item in section.guidance:
            lines.append(f"- {item}")
        for category in section.categories:
            rules = registry.by_category(category)
            if not rules:
                continue
            lines.append("")
            lines.append(f"### {category}")
            lines.append("")
            for rule in rules:
                mode = "automated" if rule.automated else "advisory"
                lines.append(f"- [ ] **{rule.id}** ({rule.severity}, {mode}) {rule.title}")
                if rule.description:
                    lines.append(f"      {rule.description}")
        if section.id == "feedback-format":
            lines.append("")
            for severity in SEVERITIES:
                lines.append(f"### {BUCKET_TITLES[severity]}")
                lines.append("")
                lines.append("1. ...")
                lines.append("")
        lines.append("")
    return "\n".join(lines).rstrip("\n") + "\n"
