""" Logging functionality for resflow.

Logging is controlled by the configuration file resflow.cfg, which should be
placed in the current working directory (where the python script is initiated).
All logging-related information is located in a section in the cfg-file with
heading logging; see sample file below.

By default, timing logs are switched off. They can be turned on by setting the
keyword 'active' to True.

Logging can be time consuming if applied to functions called many times, such as
the arithmetic of the forward mode Ad arrays, which are therefore never decorated.
To log only parts of the code, functions are classified as relevant for the
following (overlapping) categories

    all: Used to log all methods.
    assembly: Assembly of residuals and Jacobian matrices.
    grids: Construction of grids.
    parameters: Geometry, fluid and well parameters.
    models: Physical models driven by the nonlinear solver.
    numerics: Linear and nonlinear solvers, discrete operators.

The logging keywords are set on the module level.

Example logging section of resflow.cfg:

    [logging]
    # Activate logging. Without this, the rest of the section has no effect
    active: True
    # To only log specific sections, use e.g.
    sections: assembly
    # multiple sections are separated by commas:
    sections: models, numerics

"""
import functools
import inspect
import logging
import os
import time
from typing import Dict

import resflow as rf

__all__ = ["time_logger"]


# Access configuration information, as activated by the import of resflow
try:
    config: Dict = rf.config["logging"]
    raw_sections = config.get("sections", "all")
    active_sections = [s.strip().lower() for s in raw_sections.split(",")]
    logger_is_active = config.get("active", "false").strip().lower() == "true"
    always_log = "all" in active_sections

except KeyError:
    config = {}
    active_sections = ["all"]
    logger_is_active = False
    always_log = False

t_logger = logging.getLogger("Timer")
t_logger.setLevel(logging.INFO)


if logger_is_active and not t_logger.hasHandlers():
    # Add handler to write to file.
    time_handler = logging.FileHandler(config.get("file", "ResflowTimings.log"))
    time_handler.setLevel(logging.INFO)
    time_formatter = logging.Formatter("%(message)s")
    time_handler.setFormatter(time_formatter)
    t_logger.addHandler(time_handler)

# Find where in the file path the directory 'resflow' is located.
# We will use this below to strip away the common parts of file names.
separator = os.sep
path_length = __file__.split(separator).index("resflow")


def time_logger(sections):
    """A decorator that measures elapsed time for a function.

    Parameters:
        sections (list of str): Logging categories the decorated function belongs
            to. The function is timed if any of them is active.

    """

    def inner_func(func):
        @functools.wraps(func)
        def log_time(*args, **kwargs):
            if not logger_is_active:
                # Shortcut if logging is not activated.
                return func(*args, **kwargs)
            elif always_log or any([s in active_sections for s in sections]):
                # Get the name of the file, but strip away the part above
                # '/src/resflow'
                fn = separator.join(
                    inspect.getfile(func).split(separator)[path_length + 1 :]
                )
                name = f"{func.__name__} in file {fn}."

                t_logger.log(level=logging.INFO, msg=f"Calling {name}")

                start_time = time.perf_counter()
                value = func(*args, **kwargs)
                run_time = time.perf_counter() - start_time

                t_logger.log(
                    level=logging.INFO,
                    msg=f"Finished {name} Elapsed time: {run_time:.8f} s",
                )

                return value
            else:
                return func(*args, **kwargs)

        return log_time

    return inner_func
