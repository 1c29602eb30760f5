"""Gauss-Legendre quadrature rules computed at the working precision."""

from __future__ import annotations

from functools import lru_cache
from typing import Callable, Tuple

from mpmath import mpf

from hpgeom.common import InvalidParameterError
from hpgeom.numeric import Precision

# Extra digits used while computing nodes and weights
_GUARD_DIGITS = 10
_MAX_NEWTON_STEPS = 100


@lru_cache(maxsize=None)
def _legendre_rule(n: int, digits: int) -> Tuple[Tuple[mpf, ...], Tuple[mpf, ...]]:
    work = Precision(digits + _GUARD_DIGITS)
    ctx = work.ctx
    target = Precision(digits)
    limit = ctx.mpf(10) ** (-(digits + _GUARD_DIGITS // 2))

    nodes = []
    weights = []
    for i in range(1, n + 1):
        # Tricomi initial guess for the i-th largest root
        x = ctx.cos(ctx.pi * (i - ctx.mpf("0.25")) / (n + ctx.mpf("0.5")))
        dp = ctx.one
        for _ in range(_MAX_NEWTON_STEPS):
            p_prev = ctx.one
            p = x
            for k in range(2, n + 1):
                p_prev, p = p, ((2 * k - 1) * x * p - (k - 1) * p_prev) / k
            dp = n * (x * p - p_prev) / (x * x - 1)
            dx = p / dp
            x -= dx
            if ctx.fabs(dx) < limit:
                break
        # Derivative at the converged node
        p_prev = ctx.one
        p = x
        for k in range(2, n + 1):
            p_prev, p = p, ((2 * k - 1) * x * p - (k - 1) * p_prev) / k
        dp = n * (x * p - p_prev) / (x * x - 1)
        nodes.append(x)
        weights.append(2 / ((1 - x * x) * dp * dp))

    order = sorted(range(n), key=lambda j: nodes[j])
    return (
        tuple(target.scalar(nodes[j]) for j in order),
        tuple(target.scalar(weights[j]) for j in order),
    )


def gauss_legendre(n: int, precision: Precision) -> Tuple[Tuple[mpf, ...], Tuple[mpf, ...]]:
    """
    Nodes and weights of the n-point Gauss-Legendre rule on [-1, 1].

    Nodes are the roots of the Legendre polynomial P_n found by Newton iteration
    on the three-term recurrence with guard digits; results are cached per
    (n, digits).

    Args:
        n: Number of nodes (>= 1).
        precision: Precision of the returned Scalars.

    Returns:
        Tuple[Tuple[mpf, ...], Tuple[mpf, ...]]: ascending nodes and their weights
    """
    if isinstance(n, bool) or not isinstance(n, int) or n < 1:
        raise InvalidParameterError(f"Gauss-Legendre rule needs n >= 1 nodes, got {n!r}")
    if n == 1:
        return (precision.zero,), (precision.scalar(2),)
    return _legendre_rule(n, precision.digits)


def integrate(
    function: Callable[[mpf], mpf], a: mpf, b: mpf, n: int, precision: Precision
) -> mpf:
    """Apply the fixed n-point Gauss-Legendre rule to ``function`` on [a, b]."""
    nodes, weights = gauss_legendre(n, precision)
    half = (b - a) / 2
    mid = (a + b) / 2
    total = precision.zero
    for x, w in zip(nodes, weights):
        total += w * function(mid + half * x)
    return total * half
