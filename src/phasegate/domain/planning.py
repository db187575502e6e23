"""
Execution planning: pattern table lookup and skeleton instantiation.

A pattern table maps (complexity tier, domain tags) to one of a small fixed
set of canonical phase skeletons. The planner instantiates the selected
skeleton for a request by dropping optional tasks whose domain tags do not
match, expanding per-module tasks, and pruning inputs that point at dropped
tasks. Plans are never mutated; re-planning produces a new version.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

from phasegate.domain.exceptions import PlanningFailure
from phasegate.domain.graph import validate_plan
from phasegate.domain.models import (
    CheckpointRequirement,
    CheckpointType,
    ClassifiedRequest,
    ComplexityTier,
    PhaseSpec,
    Plan,
    TaskSpec,
)

DISAMBIGUATION_PHASE = "disambiguation"


# =============================================================================
# SKELETON TEMPLATES
# =============================================================================


@dataclass(frozen=True)
class TaskTemplate:
    """A task slot in a skeleton, before it is matched against a request."""

    task_id: str
    producer_id: str
    output_schema: str
    inputs: tuple[str, ...] = ()
    domain_tags: frozenset[str] = frozenset()  # Empty: always included
    skip_tolerant: bool = False
    per_module: bool = False  # Expanded to one task per request module
    max_input_bytes: int | None = None


@dataclass(frozen=True)
class PhaseTemplate:
    """A phase slot in a skeleton."""

    phase_id: str
    tasks: tuple[TaskTemplate, ...]
    concurrent: bool = True
    checkpoint: CheckpointRequirement = CheckpointRequirement.NONE
    checkpoint_type: CheckpointType = CheckpointType.INFORMATIONAL
    checkpoint_prompt: str = ""


@dataclass(frozen=True)
class Skeleton:
    """A canonical phase structure."""

    name: str
    phases: tuple[PhaseTemplate, ...]


@dataclass(frozen=True)
class PatternRule:
    """Selects a skeleton when the tier matches and any tag overlaps."""

    complexity: ComplexityTier
    any_tags: frozenset[str]
    skeleton: str

    def matches(self, request: ClassifiedRequest) -> bool:
        return self.complexity == request.complexity and bool(
            self.any_tags & request.domain_tags
        )


_REQUIREMENTS = PhaseTemplate(
    "requirements",
    (TaskTemplate("requirements_analyst", "requirements_analyst", "requirements_doc"),),
    checkpoint=CheckpointRequirement.INFORMATIONAL,
    checkpoint_prompt="Requirements captured",
)

_RESEARCH = PhaseTemplate(
    "research",
    (
        TaskTemplate(
            "tech_researcher",
            "tech_researcher",
            "research_notes",
            inputs=("requirements_analyst",),
        ),
        TaskTemplate(
            "domain_researcher",
            "domain_researcher",
            "research_notes",
            inputs=("requirements_analyst",),
        ),
    ),
)

_REVIEWED_ARCHITECTURE = PhaseTemplate(
    "architecture",
    (
        TaskTemplate(
            "architect",
            "architect",
            "architecture_doc",
            inputs=("requirements_analyst", "tech_researcher", "domain_researcher"),
        ),
    ),
    checkpoint=CheckpointRequirement.BLOCKING,
    checkpoint_type=CheckpointType.REVIEW,
    checkpoint_prompt="Review the proposed architecture before generation starts",
)

_ENGINEERS = (
    TaskTemplate(
        "backend_engineer",
        "backend_engineer",
        "source_bundle",
        inputs=("architect",),
        domain_tags=frozenset({"backend"}),
    ),
    TaskTemplate(
        "frontend_engineer",
        "frontend_engineer",
        "source_bundle",
        inputs=("architect",),
        domain_tags=frozenset({"frontend"}),
    ),
    TaskTemplate(
        "data_engineer",
        "data_engineer",
        "source_bundle",
        inputs=("architect",),
        domain_tags=frozenset({"data"}),
    ),
)

_DOCUMENTATION = PhaseTemplate(
    "documentation",
    (
        TaskTemplate(
            "technical_writer",
            "technical_writer",
            "documentation",
            inputs=("architect", "test_engineer"),
            skip_tolerant=True,
        ),
    ),
    checkpoint=CheckpointRequirement.INFORMATIONAL,
    checkpoint_type=CheckpointType.TERMINAL_SUMMARY,
    checkpoint_prompt="Run finished",
)

FOUR_PHASE = Skeleton(
    "four_phase",
    (
        _REQUIREMENTS,
        PhaseTemplate(
            "architecture",
            (
                TaskTemplate(
                    "architect",
                    "architect",
                    "architecture_doc",
                    inputs=("requirements_analyst",),
                ),
            ),
            checkpoint=CheckpointRequirement.INFORMATIONAL,
            checkpoint_prompt="Architecture drafted",
        ),
        PhaseTemplate("generation", _ENGINEERS[:2]),
        PhaseTemplate(
            "testing",
            (
                TaskTemplate(
                    "test_engineer",
                    "test_engineer",
                    "test_report",
                    inputs=("backend_engineer", "frontend_engineer"),
                ),
            ),
            checkpoint=CheckpointRequirement.INFORMATIONAL,
            checkpoint_type=CheckpointType.TERMINAL_SUMMARY,
            checkpoint_prompt="Run finished",
        ),
    ),
)

SIX_PHASE = Skeleton(
    "six_phase",
    (
        _REQUIREMENTS,
        _RESEARCH,
        _REVIEWED_ARCHITECTURE,
        PhaseTemplate("generation", _ENGINEERS),
        PhaseTemplate(
            "testing",
            (
                TaskTemplate(
                    "test_engineer",
                    "test_engineer",
                    "test_report",
                    inputs=("backend_engineer", "frontend_engineer", "data_engineer"),
                ),
            ),
        ),
        _DOCUMENTATION,
    ),
)

HIERARCHICAL = Skeleton(
    "hierarchical",
    (
        _REQUIREMENTS,
        _RESEARCH,
        _REVIEWED_ARCHITECTURE,
        PhaseTemplate(
            "module_generation",
            (
                TaskTemplate(
                    "module_engineer",
                    "module_engineer",
                    "source_bundle",
                    inputs=("architect",),
                    per_module=True,
                ),
            ),
        ),
        PhaseTemplate(
            "integration",
            (
                TaskTemplate(
                    "integrator",
                    "integrator",
                    "integration_report",
                    inputs=("module_engineer",),
                ),
            ),
        ),
        PhaseTemplate(
            "testing",
            (
                TaskTemplate(
                    "test_engineer",
                    "test_engineer",
                    "test_report",
                    inputs=("integrator",),
                ),
            ),
        ),
        _DOCUMENTATION,
    ),
)

DEFAULT_SKELETONS: dict[str, Skeleton] = {
    s.name: s for s in (FOUR_PHASE, SIX_PHASE, HIERARCHICAL)
}

_ALL_TAGS = frozenset({"backend", "frontend", "data"})

DEFAULT_RULES: tuple[PatternRule, ...] = (
    PatternRule(ComplexityTier.SIMPLE, frozenset({"backend", "frontend"}), "four_phase"),
    PatternRule(ComplexityTier.MEDIUM, _ALL_TAGS, "six_phase"),
    PatternRule(ComplexityTier.COMPLEX, _ALL_TAGS, "hierarchical"),
)


# =============================================================================
# PATTERN TABLE
# =============================================================================


class PatternTable:
    """Lookup table from classification to skeleton."""

    def __init__(
        self,
        rules: tuple[PatternRule, ...] = DEFAULT_RULES,
        skeletons: dict[str, Skeleton] | None = None,
    ):
        self._rules = rules
        self._skeletons = dict(skeletons if skeletons is not None else DEFAULT_SKELETONS)
        for rule in rules:
            if rule.skeleton not in self._skeletons:
                raise PlanningFailure(
                    "invalid_plan", f"rule refers to unknown skeleton '{rule.skeleton}'"
                )

    @property
    def skeletons(self) -> dict[str, Skeleton]:
        return dict(self._skeletons)

    def match(self, request: ClassifiedRequest) -> Skeleton | None:
        """First rule that matches wins."""
        for rule in self._rules:
            if rule.matches(request):
                return self._skeletons[rule.skeleton]
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PatternTable:
        """Build a table from a (schema-validated) patterns document."""
        skeletons = dict(DEFAULT_SKELETONS)
        for name, phases in data.get("skeletons", {}).items():
            skeletons[name] = Skeleton(
                name, tuple(_phase_from_dict(p) for p in phases)
            )
        rules = tuple(
            PatternRule(
                complexity=ComplexityTier(r["complexity"]),
                any_tags=frozenset(r["any_tags"]),
                skeleton=r["skeleton"],
            )
            for r in data.get("rules", [])
        )
        return cls(rules=rules or DEFAULT_RULES, skeletons=skeletons)


def _phase_from_dict(data: dict[str, Any]) -> PhaseTemplate:
    return PhaseTemplate(
        phase_id=data["phase_id"],
        tasks=tuple(
            TaskTemplate(
                task_id=t["task_id"],
                producer_id=t.get("producer_id", t["task_id"]),
                output_schema=t["output_schema"],
                inputs=tuple(t.get("inputs", [])),
                domain_tags=frozenset(t.get("domain_tags", [])),
                skip_tolerant=t.get("skip_tolerant", False),
                per_module=t.get("per_module", False),
                max_input_bytes=t.get("max_input_bytes"),
            )
            for t in data.get("tasks", [])
        ),
        concurrent=data.get("concurrent", True),
        checkpoint=CheckpointRequirement(data.get("checkpoint", "none")),
        checkpoint_type=CheckpointType(data.get("checkpoint_type", "informational")),
        checkpoint_prompt=data.get("checkpoint_prompt", ""),
    )


# =============================================================================
# PLANNER
# =============================================================================


class Planner:
    """Turns a classified request into an immutable Plan."""

    def __init__(
        self,
        table: PatternTable | None = None,
        confidence_threshold: float = 0.6,
    ):
        """
        Args:
            table: Pattern table (defaults to the built-in skeletons)
            confidence_threshold: Below this, the plan opens with a
                blocking disambiguation checkpoint
        """
        self._table = table or PatternTable()
        self._threshold = confidence_threshold

    def plan(self, request: ClassifiedRequest, version: int = 1) -> Plan:
        """
        Build a plan for a request.

        Raises:
            PlanningFailure: "no_applicable_pattern" when no skeleton matches
                an unambiguous request; "invalid_plan" for malformed skeletons
        """
        ambiguous = request.confidence < self._threshold
        skeleton = self._table.match(request)

        if skeleton is None and not ambiguous:
            raise PlanningFailure(
                "no_applicable_pattern",
                f"no skeleton for complexity={request.complexity.value} "
                f"tags={sorted(request.domain_tags)}",
            )

        phases: list[PhaseSpec] = []
        if ambiguous:
            phases.append(self._disambiguation_phase(request))
        if skeleton is not None:
            phases.extend(self._instantiate(skeleton, request))

        plan = Plan(
            version=version,
            pattern=skeleton.name if skeleton else None,
            phases=_renumber(phases),
        )
        validate_plan(plan)
        return plan

    def replan(
        self,
        previous: Plan,
        request: ClassifiedRequest,
        keep: int,
        basis: str | None = None,
    ) -> Plan:
        """
        New plan version for a reclassified request.

        The first `keep` phases of the previous plan are carried over
        unchanged; the reclassified request is treated as unambiguous.
        `basis` names the checkpoint whose decision asked for the new plan.
        """
        resolved = replace(request, confidence=1.0)
        fresh = self.plan(resolved, version=previous.version + 1)
        phases = list(previous.phases[:keep]) + list(fresh.phases)
        plan = Plan(
            version=previous.version + 1,
            pattern=fresh.pattern,
            phases=_renumber(phases),
            basis=basis,
        )
        validate_plan(plan)
        return plan

    def _disambiguation_phase(self, request: ClassifiedRequest) -> PhaseSpec:
        return PhaseSpec(
            phase_id=DISAMBIGUATION_PHASE,
            ordinal=0,
            tasks=(),
            concurrent=False,
            checkpoint=CheckpointRequirement.BLOCKING,
            checkpoint_type=CheckpointType.REVIEW,
            checkpoint_prompt=(
                f"Classification confidence {request.confidence:.2f} is below "
                f"{self._threshold:.2f}; confirm or reclassify the request"
            ),
            clarification=True,
        )

    def _instantiate(
        self, skeleton: Skeleton, request: ClassifiedRequest
    ) -> list[PhaseSpec]:
        kept: dict[str, tuple[str, ...]] = {}  # template id -> concrete task ids
        phases: list[PhaseSpec] = []

        for template in skeleton.phases:
            tasks: list[TaskSpec] = []
            for slot in template.tasks:
                if slot.domain_tags and not (slot.domain_tags & request.domain_tags):
                    continue
                if slot.per_module:
                    if not request.modules:
                        raise PlanningFailure(
                            "no_applicable_pattern",
                            f"skeleton '{skeleton.name}' needs module names",
                        )
                    ids = tuple(f"{slot.task_id}.{m}" for m in request.modules)
                else:
                    ids = (slot.task_id,)

                inputs = tuple(
                    concrete for dep in slot.inputs for concrete in kept.get(dep, ())
                )
                for task_id in ids:
                    tasks.append(
                        TaskSpec(
                            task_id=task_id,
                            phase_id=template.phase_id,
                            producer_id=slot.producer_id,
                            output_schema=slot.output_schema,
                            inputs=inputs,
                            skip_tolerant=slot.skip_tolerant,
                            max_input_bytes=slot.max_input_bytes,
                        )
                    )
                kept[slot.task_id] = ids

            phases.append(
                PhaseSpec(
                    phase_id=template.phase_id,
                    ordinal=0,
                    tasks=tuple(tasks),
                    concurrent=template.concurrent,
                    checkpoint=template.checkpoint,
                    checkpoint_type=template.checkpoint_type,
                    checkpoint_prompt=template.checkpoint_prompt,
                )
            )
        return phases


def _renumber(phases: list[PhaseSpec]) -> tuple[PhaseSpec, ...]:
    return tuple(replace(p, ordinal=i) for i, p in enumerate(phases))
