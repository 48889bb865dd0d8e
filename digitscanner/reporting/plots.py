"""Training curve figure for a run directory."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Mapping


class PlotAdapter:
    """Collect per-epoch loss and accuracy; :meth:`close` renders ``training.png``.

    Disabled adapters accept callbacks and do nothing, so a run can always
    register one.  matplotlib is only imported when a figure is drawn and
    always with the non-interactive Agg backend.
    """

    FILENAME = "training.png"

    def __init__(self, run_dir: str | Path, enable_plots: bool = False) -> None:
        self.run_dir = Path(run_dir)
        self.enable_plots = bool(enable_plots)
        self.history: Dict[str, List[float]] = {"epoch": [], "loss": [], "accuracy": []}

    def on_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        if not self.enable_plots or "loss" not in metrics:
            return
        self.history["epoch"].append(float(epoch))
        self.history["loss"].append(float(metrics["loss"]))
        self.history["accuracy"].append(100.0 * float(metrics.get("accuracy", 0.0)))

    __call__ = on_epoch

    def close(self) -> Path | None:
        if not self.enable_plots or not self.history["epoch"]:
            return None
        import matplotlib

        matplotlib.use("Agg", force=True)
        import matplotlib.pyplot as plt

        self.run_dir.mkdir(parents=True, exist_ok=True)
        epochs = self.history["epoch"]
        fig, loss_axis = plt.subplots(figsize=(7, 4))
        loss_axis.plot(epochs, self.history["loss"], marker="o", color="tab:blue")
        loss_axis.set_xlabel("Epoch")
        loss_axis.set_ylabel("Mean cross-entropy", color="tab:blue")
        accuracy_axis = loss_axis.twinx()
        accuracy_axis.plot(epochs, self.history["accuracy"], marker="s", color="tab:green")
        accuracy_axis.set_ylabel("Training accuracy (%)", color="tab:green")
        accuracy_axis.set_ylim(0.0, 100.0)
        fig.tight_layout()
        plot_path = self.run_dir / self.FILENAME
        fig.savefig(plot_path)
        plt.close(fig)
        return plot_path


__all__ = ["PlotAdapter"]
