"""Per-sheet driver: void heads on every system, systems run in parallel.

Can be used as a library or run directly for visual debugging:
    python -m recognition.sheet image.png [--no-plot]
"""

import logging
import sys
from concurrent.futures import ThreadPoolExecutor

import cv2 as cv

from .image import load_image
from .shapes import Shape
from .staves import build_sheet
from .templates import TemplateFactory
from .void_heads import VoidHeadsBuilder, VoidHeadsConfig

logger = logging.getLogger(__name__)


def process_sheet(sheet, factory=None, config=VoidHeadsConfig(), max_workers=None):
    """Build void heads in every system of ``sheet``.

    Systems are independent: each worker fills the SIG of its own system.
    Only the template factory is shared.

    Returns:
        dict mapping system id to the list of inters created in it.
    """
    factory = factory or TemplateFactory()

    def run(system):
        return system.id, VoidHeadsBuilder(system, factory, config).build_void_heads()

    results = {}
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = [pool.submit(run, system) for system in sheet.systems]
        for future in futures:
            try:
                system_id, inters = future.result()
            except Exception:
                logger.exception("Void heads failed on a system")
                raise
            results[system_id] = inters

    logger.info(
        "Sheet %dx%d: %d void heads in %d systems",
        sheet.width, sheet.height, sum(map(len, results.values())), len(results),
    )
    return results


# ---------------------------------------------------------------------------
# Visualization (only imported when running directly)
# ---------------------------------------------------------------------------

def plot_results(img, sheet):
    """Page with staff lines, seeds, head inters and their exclusions."""
    import matplotlib.pyplot as plt

    display = img.copy()
    if display.ndim == 2:
        display = cv.cvtColor(display, cv.COLOR_GRAY2BGR)

    colors = {
        Shape.NOTEHEAD_VOID: (255, 0, 0),
        Shape.WHOLE_NOTE: (0, 160, 0),
    }
    for system in sheet.systems:
        for staff in system.staves:
            for line in staff.lines:
                start = tuple(map(int, line.left_point))
                stop = tuple(map(int, line.right_point))
                cv.line(display, start, stop, (200, 200, 0), 1)
        for seed in system.glyphs:
            b = seed.bounds
            cv.rectangle(display, (int(b.x), int(b.y)), (int(b.max_x), int(b.max_y)), (255, 0, 255), 1)
        for inter in system.sig:
            b = inter.box
            color = colors.get(inter.shape, (0, 0, 255))
            cv.rectangle(display, (int(b.x), int(b.y)), (int(b.max_x), int(b.max_y)), color, 2)
        for exclusion in system.sig.exclusions():
            a = system.sig.graph.nodes[exclusion.source]["inter"].box.center
            b = system.sig.graph.nodes[exclusion.target]["inter"].box.center
            cv.line(display, tuple(map(int, a)), tuple(map(int, b)), (0, 0, 255), 1)

    n_inters = sum(len(system.sig) for system in sheet.systems)
    n_exclusions = sum(len(system.sig.exclusions()) for system in sheet.systems)
    _, ax = plt.subplots(figsize=(14, 18))
    ax.imshow(cv.cvtColor(display, cv.COLOR_BGR2RGB))
    ax.set_title(
        f"{len(sheet.systems)} systems, interline {sheet.scale.interline}: "
        f"{n_inters} heads, {n_exclusions} exclusions"
    )
    ax.axis("off")
    plt.tight_layout()
    plt.show()


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def _print_summary(sheet, results, label):
    print(f"\n{label}:")
    print(f"  Systems: {len(sheet.systems)}, Interline: {sheet.scale.interline}")
    for system in sheet.systems:
        inters = results.get(system.id, [])
        by_shape = {}
        for inter in inters:
            by_shape[inter.shape.name] = by_shape.get(inter.shape.name, 0) + 1
        print(f"  System {system.id}: {len(system.staves)} staves, "
              f"{len(system.glyphs)} seeds, {system.sig}, {by_shape}")


def main():
    """Usage: python -m recognition.sheet image [--no-plot]

    Examples:
        python -m recognition.sheet score.png              # summary + plot
        python -m recognition.sheet score.png --no-plot    # summary only
    """
    logging.basicConfig(level=logging.INFO)
    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    if not args:
        print(main.__doc__)
        sys.exit(1)

    source = args[0]
    img = load_image(source)
    sheet = build_sheet(img)
    config = VoidHeadsConfig(print_watch=True)
    results = process_sheet(sheet, TemplateFactory(), config)
    _print_summary(sheet, results, source)
    if "--no-plot" not in sys.argv:
        plot_results(img, sheet)


if __name__ == "__main__":
    main()
