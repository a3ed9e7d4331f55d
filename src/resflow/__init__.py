"""   resflow.

Root directory for the resflow package. Contains the following sub-packages:

ad: Forward mode automatic differentiation with block-structured Jacobians.

grids: Grid topology and Cartesian grid constructors.

params: Geometry (pore volumes, transmissibilities), fluid models and wells.

numerics: Grid operators, upwinding, linear and nonlinear solvers.

models: Reservoir states and the implicit pressure assembly.

utils: Logging utilities.


isort:skip_file

"""

import configparser
import os
from pathlib import Path


__version__ = "0.3.0"

# Read the config file from the directory where the python process was launched.
# A missing file gives an empty configuration.
cwd = Path(os.getcwd())
pth = cwd / Path("resflow.cfg")
cfg = configparser.ConfigParser()
try:
    cfg.read(pth)
except configparser.Error:
    cfg = configparser.ConfigParser()
config = {name: dict(section) for name, section in cfg.items()}

# ------------------------------------
# Simplified namespaces. The rule of thumb is that classes and modules that a
# user can be exposed to should have a shortcut here.

from resflow.utils.logging import time_logger

# Automatic differentiation
from resflow.ad.forward_mode import AdArray, initAdArrays
from resflow.ad import utils as ad_utils

# Grids and geometry
from resflow.grids.grid import Grid
from resflow.grids.structured import CartGrid
from resflow.params.geometry import DerivedGeology
from resflow.params.fluid import LinearlyCompressibleFluid
from resflow.params.wells import Wells

# Numerics
from resflow.numerics.fv.operators import HelperOps
from resflow.numerics.fv.upwind import UpwindSelector
from resflow.numerics.linear_solvers import (
    LinearSolverConvergenceError,
    LinearSolverReport,
    ScipySparseSolver,
    GmresSolver,
    linear_solver_from_params,
)
from resflow.numerics.nonlinear.convergence_check import ConvergenceStatus
from resflow.numerics.nonlinear.nonlinear_solvers import (
    NewtonSolver,
    NewtonStepReport,
    RelaxType,
    SolverParameters,
)

# Models
from resflow.models.states import ReservoirState, WellState
from resflow.models.fluid_data import PressureDependentFluidData
from resflow.models.impes_pressure import ImpesTPFAAD, ImpesPressureModel
