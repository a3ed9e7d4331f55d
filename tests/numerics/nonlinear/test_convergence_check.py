import pytest

from resflow.numerics.nonlinear.convergence_check import ConvergenceStatus


@pytest.mark.parametrize(
    "status_str, converged",
    [("converged", True), ("NOT_CONVERGED", False)],
)
def test_convergence_status(status_str, converged):
    status = ConvergenceStatus.from_str(status_str)
    assert status.is_converged() == converged
    assert status.is_not_converged() != converged
    assert ConvergenceStatus.from_str(str(status)) == status
