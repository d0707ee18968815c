from pcregistration.visualization import plot_convergence


def test_plot_convergence_writes_file(tmp_path):
    path = tmp_path / "convergence.png"
    plot_convergence([1.0, 0.1, 0.01], correspondence_counts=[30, 28, 28],
                     save_path=str(path), show=False)
    assert path.exists()
