"""
Model Specifications for Analysis Engines.

A specification says what to fit (response, fixed-effect terms, grouping
factor, priors), independent of which engine fits it. Specifications are
typed objects; formula strings are only produced at the engine boundary.

Usage
-----
    from analysis.specifications import load_specifications, get_specification

    # Load all specifications
    specs = load_specifications()

    # Get a specific specification
    spec = get_specification('log_informative')

    # Validate a specification
    errors = validate_specification(spec)
"""
from __future__ import annotations

import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import numpy as np
import pandas as pd
import yaml

# Add parent directory for config import
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import FIXED_EFFECTS, GROUP_FACTOR, SPECIFICATIONS_FILE


RESPONSES = ('looking_time', 'log_looking_time')

# Coefficient classes that accept a prior
PRIOR_CLASSES = ('Intercept', 'b', 'sigma', 'sd')

# Family name -> positional parameter names
PRIOR_FAMILIES = {
    'normal': ('mu', 'sigma'),
    'student_t': ('nu', 'mu', 'sigma'),
    'cauchy': ('alpha', 'beta'),
    'half_normal': ('sigma',),
    'half_student_t': ('nu', 'sigma'),
    'half_cauchy': ('beta',),
    'exponential': ('lam',),
}

# Families restricted to positive support
POSITIVE_FAMILIES = ('half_normal', 'half_student_t', 'half_cauchy', 'exponential')

_PRIOR_PATTERN = re.compile(r'^\s*([a-z_]+)\s*\((.*)\)\s*$')


# ============================================================
# TYPES
# ============================================================

@dataclass(frozen=True)
class Prior:
    """
    A prior distribution descriptor.

    Attributes
    ----------
    family : str
        Distribution family (see PRIOR_FAMILIES)
    params : dict
        Parameter name -> value
    """

    family: str
    params: dict = field(default_factory=dict)

    def __post_init__(self):
        if self.family not in PRIOR_FAMILIES:
            available = ', '.join(sorted(PRIOR_FAMILIES))
            raise ValueError(f"Unknown prior family: '{self.family}'. Available: {available}")
        expected = set(PRIOR_FAMILIES[self.family])
        if set(self.params) != expected:
            raise ValueError(
                f"Prior '{self.family}' expects parameters {sorted(expected)}, "
                f"got {sorted(self.params)}"
            )

    @classmethod
    def from_string(cls, text: str) -> 'Prior':
        """
        Parse the shorthand used in specifications.yml.

        ``"normal(0, 1)"`` becomes ``Prior('normal', {'mu': 0.0, 'sigma': 1.0})``.
        """
        match = _PRIOR_PATTERN.match(text)
        if not match:
            raise ValueError(f"Cannot parse prior: '{text}'")
        family, args = match.groups()
        if family not in PRIOR_FAMILIES:
            available = ', '.join(sorted(PRIOR_FAMILIES))
            raise ValueError(f"Unknown prior family: '{family}'. Available: {available}")
        values = [float(a) for a in args.split(',') if a.strip()]
        names = PRIOR_FAMILIES[family]
        if len(values) != len(names):
            raise ValueError(
                f"Prior '{family}' takes {len(names)} argument(s), got {len(values)}: '{text}'"
            )
        return cls(family, dict(zip(names, values)))

    def __hash__(self) -> int:
        return hash((self.family, tuple(sorted(self.params.items()))))

    def __str__(self) -> str:
        args = ', '.join(f"{self.params[n]:g}" for n in PRIOR_FAMILIES[self.family])
        return f"{self.family}({args})"


@dataclass(frozen=True)
class ModelSpec:
    """
    Declarative description of a random-intercept mixed model.

    Attributes
    ----------
    name : str
        Specification name
    response : str
        Response column ('looking_time' or 'log_looking_time')
    fixed_effects : tuple[str, ...]
        Ordered term tags; 'a:b' is the interaction of a and b
    group : str
        Grouping factor for the random intercept
    priors : dict[str, Prior]
        Coefficient class -> prior; classes left out use engine defaults
    description : str
        Human-readable description
    """

    name: str
    response: str
    fixed_effects: tuple = tuple(FIXED_EFFECTS)
    group: str = GROUP_FACTOR
    priors: dict = field(default_factory=dict)
    description: str = ''

    def __hash__(self) -> int:
        # priors is a dict, so hash its sorted items
        return hash((
            self.name,
            self.response,
            tuple(self.fixed_effects),
            self.group,
            tuple(sorted(self.priors.items())),
            self.description,
        ))

    @property
    def has_priors(self) -> bool:
        return bool(self.priors)

    @property
    def variables(self) -> list[str]:
        """Columns the model reads from the analysis table."""
        cols = [self.response, self.group]
        for term in self.fixed_effects:
            for part in term.split(':'):
                if part not in cols:
                    cols.append(part)
        return cols

    def prior_for(self, coef_class: str) -> Optional[Prior]:
        return self.priors.get(coef_class)

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'response': self.response,
            'fixed_effects': list(self.fixed_effects),
            'group': self.group,
            'priors': {k: str(v) for k, v in self.priors.items()},
            'description': self.description,
        }


# ============================================================
# CONSTRUCTION
# ============================================================

def build_model_spec(
    name: str,
    response: str,
    priors: Optional[dict] = None,
    fixed_effects: Optional[list[str]] = None,
    group: Optional[str] = None,
    description: str = '',
) -> ModelSpec:
    """
    Create a specification with the tutorial's default terms and group.

    Parameters
    ----------
    name : str
        Specification name
    response : str
        Response column
    priors : dict, optional
        Coefficient class -> Prior or shorthand string
    fixed_effects : list[str], optional
        Term tags (default: age, stimulus and their interaction)
    group : str, optional
        Grouping factor (default: subject_id)
    description : str
        Human-readable description

    Returns
    -------
    ModelSpec
        The specification

    Raises
    ------
    ValueError
        If the specification is invalid
    """
    parsed = {}
    for coef_class, prior in (priors or {}).items():
        parsed[coef_class] = prior if isinstance(prior, Prior) else Prior.from_string(prior)

    spec = ModelSpec(
        name=name,
        response=response,
        fixed_effects=tuple(fixed_effects or FIXED_EFFECTS),
        group=group or GROUP_FACTOR,
        priors=parsed,
        description=description,
    )

    errors = validate_specification(spec)
    if errors:
        raise ValueError(
            f"Invalid specification '{name}':\n" + "\n".join(f"  - {e}" for e in errors)
        )
    return spec


def validate_specification(spec: ModelSpec) -> list[str]:
    """
    Validate a specification.

    Parameters
    ----------
    spec : ModelSpec
        Specification to validate

    Returns
    -------
    list[str]
        List of validation error messages (empty if valid)
    """
    errors = []

    if spec.response not in RESPONSES:
        errors.append(f"Response must be one of {list(RESPONSES)}: '{spec.response}'")

    if not spec.fixed_effects:
        errors.append("At least one fixed-effect term is required")

    for term in spec.fixed_effects:
        if not all(part.strip() for part in term.split(':')):
            errors.append(f"Malformed term: '{term}'")

    if len(set(spec.fixed_effects)) != len(spec.fixed_effects):
        errors.append("Duplicate fixed-effect terms")

    if not spec.group:
        errors.append("A grouping factor is required")

    for coef_class, prior in spec.priors.items():
        if coef_class not in PRIOR_CLASSES:
            errors.append(
                f"Unknown coefficient class '{coef_class}'. Allowed: {list(PRIOR_CLASSES)}"
            )
        elif coef_class in ('Intercept', 'b') and prior.family in POSITIVE_FAMILIES:
            errors.append(
                f"Prior for '{coef_class}' must have unbounded support, got '{prior.family}'"
            )

    return errors


# ============================================================
# REGISTRY (specifications.yml)
# ============================================================

def load_specifications(path: Optional[Path] = None) -> dict[str, ModelSpec]:
    """
    Load specifications from YAML file.

    Parameters
    ----------
    path : Path, optional
        Path to specifications file. Defaults to SPECIFICATIONS_FILE.

    Returns
    -------
    dict[str, ModelSpec]
        Dictionary of specification_name -> ModelSpec

    Raises
    ------
    FileNotFoundError
        If specifications file not found
    ValueError
        If an entry is invalid
    """
    path = Path(path) if path is not None else SPECIFICATIONS_FILE

    if not path.exists():
        raise FileNotFoundError(f"Specifications file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if raw is None:
        return {}

    specs = {}
    for name, entry in raw.items():
        specs[name] = build_model_spec(
            name=name,
            response=entry.get('response', ''),
            priors=entry.get('priors'),
            fixed_effects=entry.get('fixed_effects'),
            group=entry.get('group'),
            description=entry.get('description', ''),
        )
    return specs


def get_specification(name: str, path: Optional[Path] = None) -> ModelSpec:
    """
    Get a single specification by name.

    Raises
    ------
    KeyError
        If specification not found
    """
    specs = load_specifications(path)

    if name not in specs:
        available = ', '.join(sorted(specs.keys()))
        raise KeyError(
            f"Unknown specification: '{name}'. Available: {available}"
        )

    return specs[name]


def list_specifications(path: Optional[Path] = None) -> list[str]:
    """List all available specification names."""
    return sorted(load_specifications(path).keys())


# ============================================================
# ENGINE BOUNDARY
# ============================================================

def spec_to_formula(spec: ModelSpec) -> str:
    """
    Convert a specification to a statsmodels formula.

    The grouping factor is passed to MixedLM separately, so only the
    fixed-effect part appears here.
    """
    return f"{spec.response} ~ {' + '.join(spec.fixed_effects)}"


def design_matrix(df: pd.DataFrame, spec: ModelSpec) -> np.ndarray:
    """
    Build the fixed-effect design matrix (no intercept column).

    Interaction tags are the elementwise product of their parts.

    Returns
    -------
    np.ndarray
        Array of shape (n_rows, n_terms)
    """
    missing = [c for c in spec.variables if c not in df.columns]
    if missing:
        raise KeyError(f"Missing columns for '{spec.name}': {missing}")

    columns = []
    for term in spec.fixed_effects:
        values = np.ones(len(df))
        for part in term.split(':'):
            values = values * df[part].to_numpy(dtype=float)
        columns.append(values)
    return np.column_stack(columns)


def describe_specification(spec: ModelSpec) -> str:
    """One-line brms-style description used in console output."""
    formula = f"{spec.response} ~ {' + '.join(spec.fixed_effects)} + (1 | {spec.group})"
    if not spec.priors:
        return f"{formula}  [default priors]"
    priors = ', '.join(f"{k} ~ {v}" for k, v in spec.priors.items())
    return f"{formula}  [{priors}]"
