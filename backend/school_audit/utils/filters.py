from __future__ import annotations
from typing import Any, Dict, List
from school_audit.errors import ValidationError


def build_filter_clauses(specs: Dict[str, Dict[str, Any]], params: Dict[str, Any]) -> List[Any]:
    """Generic filter builder.

    specs: { param_name: { 'op': callable(value)->clause, 'coerce': type/func, 'validate': callable(optional) } }
    Absent, None and blank values are skipped. Returns the clause list so the same
    filters can feed both the page query and its count.
    """
    clauses = []
    for name, meta in specs.items():
        val = params.get(name)
        if val is None or (isinstance(val, str) and not val.strip()):
            continue
        if 'coerce' in meta:
            try:
                val = meta['coerce'](val)
            except (TypeError, ValueError):
                raise ValidationError(f'{name} invalid', field=name)
        if 'validate' in meta and not meta['validate'](val):
            raise ValidationError(f'{name} invalid', field=name)
        clauses.append(meta['op'](val))
    return clauses
