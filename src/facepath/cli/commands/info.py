"""Info command for facepath CLI.

Shows available detectors, attribute kinds and model locations.
"""

import importlib.util


def _backend_status(module: str) -> str:
    return "available" if importlib.util.find_spec(module) is not None else "not installed"


def run_info(args) -> int:
    """Show system information and available components."""
    import cv2
    import numpy as np

    from facepath import __version__
    from facepath.analyzers import build_analyzer
    from facepath.attributes import AttributeKind
    from facepath.detectors import available_detectors
    from facepath.paths import get_models_dir

    print("FacePath - System Information")
    print("=" * 60)
    print(f"  facepath:      {__version__}")
    print(f"  numpy:         {np.__version__}")
    print(f"  opencv:        {cv2.__version__}")

    print("\n[Detectors]")
    print("-" * 60)
    for name in available_detectors():
        print(f"  {name}")

    print("\n[Attributes]")
    print("-" * 60)
    analyzer = build_analyzer(list(AttributeKind), models_dir=args.models_dir)
    for model in analyzer.models:
        kinds = ", ".join(sorted(k.value for k in model.kinds))
        path = getattr(model, "model_path", None)
        print(f"  {kinds:<20} {model.name:<12} {path or ''}")

    print("\n[Models]")
    print("-" * 60)
    print(f"  directory:     {args.models_dir or get_models_dir()}")

    if args.verbose:
        print("\n[Optional backends]")
        print("-" * 60)
        print(f"  onnxruntime:   {_backend_status('onnxruntime')}")
        print(f"  insightface:   {_backend_status('insightface')}")
    return 0
