from .services.registry import MarkerRegistry
from .strategies.base import PoseSolver
from .strategies.solve_geometric import GeometricSolver
from .strategies.solve_pnp import PerspectiveSolver

SOLVERS = ("perspective", "geometric")


class SolverFactory:
    @staticmethod
    def from_config(config, registry: MarkerRegistry) -> PoseSolver:
        name = (getattr(config, "solver", "perspective") or "perspective").strip().lower()

        # Geometric only: no PnP at all
        if name == "geometric":
            return GeometricSolver(registry)

        # Perspective solve, geometric estimate when it fails
        if name == "perspective":
            return PerspectiveSolver(registry, fallback=GeometricSolver(registry))

        raise ValueError(f"unknown solver {name!r}; expected one of {', '.join(SOLVERS)}")
