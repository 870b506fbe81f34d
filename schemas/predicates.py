"""
Filter predicates attached to entity types.

A closed set of three variants, applied uniformly to every query the
planner and the cursors issue for the entity type they belong to.
"""

import operator
from typing import Annotated, Any, Dict, Iterable, List, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, Field, TypeAdapter
from sqlalchemy import inspect, text


def _column(entity_cls, field: str):
    """Resolve a mapped column attribute, rejecting unknown names"""
    if field not in inspect(entity_cls).column_attrs:
        raise ValueError(f"{entity_cls.__name__} has no column attribute '{field}'")
    return getattr(entity_cls, field)


class RangePredicate(BaseModel):
    """Comparison against a constant: field <op> value"""
    kind: Literal["range"] = "range"
    field: str = Field(..., min_length=1)
    op: Literal["lt", "le", "gt", "ge", "ne"]
    value: Any
    
    def to_clause(self, entity_cls):
        return getattr(operator, self.op)(_column(entity_cls, self.field), self.value)
    
    class Config:
        frozen = True


class EqualityPredicate(BaseModel):
    """Equality against a constant; a None value renders IS NULL"""
    kind: Literal["eq"] = "eq"
    field: str = Field(..., min_length=1)
    value: Any
    
    def to_clause(self, entity_cls):
        column = _column(entity_cls, self.field)
        if self.value is None:
            return column.is_(None)
        return column == self.value
    
    class Config:
        frozen = True


class RawPredicate(BaseModel):
    """Raw SQL boolean expression, inserted verbatim into the WHERE clause"""
    kind: Literal["raw"] = "raw"
    expression: str = Field(..., min_length=1)
    
    def to_clause(self, entity_cls):
        return text(self.expression)
    
    class Config:
        frozen = True


Predicate = Annotated[
    Union[RangePredicate, EqualityPredicate, RawPredicate],
    Field(discriminator="kind")
]

_predicate_list = TypeAdapter(List[Predicate])


def dump_predicates(predicates: Mapping[str, Iterable[Predicate]]) -> Dict[str, List[Dict[str, Any]]]:
    """Serialize per-entity predicates for the job record"""
    return {
        name: [p.model_dump(mode="json") for p in preds]
        for name, preds in predicates.items()
    }


def load_predicates(data: Optional[Mapping[str, List[Dict[str, Any]]]] = None) -> Dict[str, Tuple[Predicate, ...]]:
    """Inverse of dump_predicates"""
    if not data:
        return {}
    return {
        name: tuple(_predicate_list.validate_python(items))
        for name, items in data.items()
    }
