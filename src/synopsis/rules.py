# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Publisher rule table: schema, compilation, and the shipped defaults.

A rule table is an ordered list of mappings validated by pydantic
(``RuleModel``) and compiled once into immutable ``Rule`` objects whose
expressions and selectors are ready to evaluate.  Schema, expression, or
selector problems surface as RuleSchemaError at load time.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import yaml
from lxml.cssselect import CSSSelector
from pydantic import BaseModel, ConfigDict, Field, StrictStr, TypeAdapter, ValidationError

from .dom import compile_selector
from .errors import ExpressionError, RuleSchemaError
from .expressions import CompiledExpression, compile_expression

logger = logging.getLogger(__name__)

DEFAULT_RULES_PATH = Path(__file__).parent / "rules.yaml"

PUBLISHER_FIELD = "publisher"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


class DomRuleModel(BaseModel):
    """Markup lookup: first node matching ``nodeSelector``, bound as ``node``."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    node_selector: StrictStr = Field(alias="nodeSelector", min_length=1)
    consequent: StrictStr = Field(min_length=1, description="string expression over properties + node")


class RuleModel(BaseModel):
    """One row of the rule table."""

    model_config = ConfigDict(extra="forbid")

    condition: StrictStr | Literal[True] = Field(description='boolean expression, or true')
    consequent: StrictStr | Literal[False] | None = Field(
        default="", description="string expression; null/false excludes; '' falls through"
    )
    dom: dict[str, DomRuleModel] | None = Field(default=None, description="DOM equivalent logic")
    description: StrictStr | None = Field(default=None, description="a brief annotation")


_TABLE_ADAPTER = TypeAdapter(list[RuleModel])


# ---------------------------------------------------------------------------
# Compiled rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DomRule:
    selector_source: str
    selector: CSSSelector = field(repr=False)
    consequent: CompiledExpression


@dataclass(frozen=True, slots=True)
class Rule:
    """A compiled rule.

    ``condition`` is None for the literal ``true``.  ``consequent`` is either a
    compiled expression or a literal: "" (fall through), None or False (exclude).
    """

    condition: CompiledExpression | None
    consequent: CompiledExpression | str | bool | None
    dom: Mapping[str, DomRule] = field(default_factory=dict)
    description: str = ""

    @property
    def publisher_dom(self) -> DomRule | None:
        return self.dom.get(PUBLISHER_FIELD)

    @property
    def extra_dom(self) -> dict[str, DomRule]:
        """DOM lookups that describe the publisher but do not identify it."""
        return {name: rule for name, rule in self.dom.items() if name != PUBLISHER_FIELD}

    def matches(self, context: Mapping[str, Any]) -> bool:
        if self.condition is None:
            return True
        return bool(self.condition.evaluate(context))

    def evaluate_consequent(self, context: Mapping[str, Any]) -> Any:
        if isinstance(self.consequent, CompiledExpression):
            return self.consequent.evaluate(context)
        return self.consequent


def _compile_rule(index: int, model: RuleModel) -> Rule:
    label = model.description or f"rule #{index}"
    try:
        condition = None if model.condition is True else compile_expression(model.condition)
        if isinstance(model.consequent, str) and model.consequent.strip():
            consequent: CompiledExpression | str | bool | None = compile_expression(model.consequent)
        elif isinstance(model.consequent, str):
            consequent = ""
        else:
            consequent = model.consequent
        dom = {
            name: DomRule(
                selector_source=sub.node_selector,
                selector=compile_selector(sub.node_selector),
                consequent=compile_expression(sub.consequent),
            )
            for name, sub in (model.dom or {}).items()
        }
    except ExpressionError as e:
        raise RuleSchemaError(f"{label}: {e}") from e
    except RuleSchemaError as e:
        raise RuleSchemaError(f"{label}: {e}") from e
    return Rule(condition=condition, consequent=consequent, dom=dom, description=model.description or "")


def validate_rules(data: Any) -> list[RuleModel]:
    """Validate raw rule-table data against the schema."""
    try:
        return _TABLE_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise RuleSchemaError(f"rule table does not match schema:\n{e}") from e


def load_rules(source: str | Path | Iterable[Mapping[str, Any]]) -> tuple[Rule, ...]:
    """Load and compile a rule table.

    Args:
        source: Path to a YAML file, or already-decoded rule mappings.

    Raises:
        RuleSchemaError: the table is malformed.
    """
    if isinstance(source, (str, Path)):
        path = Path(source)
        with open(path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise RuleSchemaError(f"{path}: invalid YAML: {e}") from e
    else:
        data = source

    rules = tuple(_compile_rule(i, model) for i, model in enumerate(validate_rules(data)))
    logger.debug("Loaded %d publisher rules", len(rules))
    return rules


@functools.cache
def default_rules() -> tuple[Rule, ...]:
    """The rule table shipped with the package (loaded once)."""
    return load_rules(DEFAULT_RULES_PATH)
