# Central configuration for data, model, training, and evaluation.
# I freeze the dataclass so a run's settings cannot drift after the model is built;
# overrides go through dataclasses.replace.

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace


@dataclass(frozen=True)
class Config:
    # Randomness (weight init and train/test split)
    seed: int = 12345

    # Image geometry, D = rows * columns
    rows:    int = 28
    columns: int = 28
    num_classes: int = 10

    # Data source
    data_path:      str = "data/mnist.npz"
    num_examples:   int = 50000
    batch_size:     int = 100
    train_fraction: float = 0.8

    # Model settings
    hidden_width:     int = 250
    bottleneck_width: int = 10
    activation:       str = "sigmoid"

    # Optimizer (Adagrad + L2 on weights)
    learning_rate: float = 0.05
    l2_penalty:    float = 1e-4
    adagrad_eps:   float = 1e-6
    epochs:        int = 10
    log_every:     int = 100

    # Evaluation
    top_k: int = 5
    eval_batch_size: int = 1000

    # Runtime
    out_dir: str = "experiments"

    def __post_init__(self):
        for name in ("rows", "columns", "num_classes", "batch_size", "hidden_width",
                     "bottleneck_width", "epochs", "top_k", "eval_batch_size", "num_examples"):
            if int(getattr(self, name)) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)!r}")
        if not 0.0 < float(self.train_fraction) < 1.0:
            raise ValueError(f"train_fraction must be in (0, 1), got {self.train_fraction!r}")
        if self.learning_rate <= 0:
            raise ValueError(f"learning_rate must be positive, got {self.learning_rate!r}")
        if self.l2_penalty < 0:
            raise ValueError(f"l2_penalty must be non-negative, got {self.l2_penalty!r}")

    @property
    def in_dim(self) -> int:
        return int(self.rows * self.columns)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "Config":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(d) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {unknown}")
        return cls(**d)

    def override(self, **kw) -> "Config":
        # None means "not given on the command line"
        return replace(self, **{k: v for k, v in kw.items() if v is not None})


def add_config_args(ap) -> None:
    # Flags I override most often; everything else comes from cfg.json or the defaults.
    ap.add_argument("--data", dest="data_path", default=None, help="npz with X/y or x_train/y_train")
    ap.add_argument("--epochs", type=int, default=None)
    ap.add_argument("--seed", type=int, default=None)
    ap.add_argument("--max-examples", dest="num_examples", type=int, default=None,
                    help="limit examples for quick debugging")
    ap.add_argument("--top-k", dest="top_k", type=int, default=None)
    ap.add_argument("--out-dir", dest="out_dir", default=None)


def config_from_args(args, base: Config | None = None) -> Config:
    base = base or Config()
    return base.override(
        data_path=args.data_path,
        epochs=args.epochs,
        seed=args.seed,
        num_examples=args.num_examples,
        top_k=args.top_k,
        out_dir=args.out_dir,
    )
