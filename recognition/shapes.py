"""Shape catalog: the closed set of symbol shapes and their named families.

Some shapes are *physical*: what a template or the classifier sees. A few of
them are ambiguous and must be mapped to a *logical* shape using context
(``HW_REST_SET`` becomes a half or a whole rest, ``WEDGE_SET`` a crescendo or
a diminuendo, the on-line / between-line head templates become the head they
stand for).
"""

from enum import Enum


class CatalogError(Exception):
    """Base exception for shape catalog inconsistencies."""
    pass


class ShapeCatalogError(CatalogError):
    """Raised when a physical shape has no logical counterpart."""
    pass


class Shape(Enum):
    # Heads and stems
    NOTEHEAD_BLACK = "notehead_black"
    NOTEHEAD_VOID = "notehead_void"
    WHOLE_NOTE = "whole_note"
    BREVE = "breve"
    VERTICAL_SEED = "vertical_seed"
    STEM = "stem"
    BEAM = "beam"
    LEDGER = "ledger"

    # Head templates, by position relative to lines
    VOID_EVEN = "void_even"
    VOID_ODD = "void_odd"
    WHOLE_EVEN = "whole_even"
    WHOLE_ODD = "whole_odd"

    # Rests
    LONG_REST = "long_rest"
    BREVE_REST = "breve_rest"
    MULTI_REST = "multi_rest"
    HW_REST_SET = "hw_rest_set"
    WHOLE_REST = "whole_rest"
    HALF_REST = "half_rest"
    QUARTER_REST = "quarter_rest"
    EIGHTH_REST = "eighth_rest"
    SIXTEENTH_REST = "sixteenth_rest"

    # Clefs
    G_CLEF = "g_clef"
    G_CLEF_SMALL = "g_clef_small"
    G_CLEF_8VA = "g_clef_8va"
    G_CLEF_8VB = "g_clef_8vb"
    C_CLEF = "c_clef"
    F_CLEF = "f_clef"
    F_CLEF_SMALL = "f_clef_small"
    F_CLEF_8VA = "f_clef_8va"
    F_CLEF_8VB = "f_clef_8vb"
    PERCUSSION_CLEF = "percussion_clef"

    # Time signatures
    COMMON_TIME = "common_time"
    CUT_TIME = "cut_time"
    TIME_TWO_FOUR = "time_two_four"
    TIME_THREE_FOUR = "time_three_four"
    TIME_FOUR_FOUR = "time_four_four"
    TIME_SIX_EIGHT = "time_six_eight"
    TIME_TWO = "time_two"
    TIME_THREE = "time_three"
    TIME_FOUR = "time_four"
    TIME_SIX = "time_six"
    TIME_EIGHT = "time_eight"
    TIME_TWELVE = "time_twelve"

    # Dynamics and wedges
    DYNAMICS_P = "dynamics_p"
    DYNAMICS_PP = "dynamics_pp"
    DYNAMICS_MP = "dynamics_mp"
    DYNAMICS_F = "dynamics_f"
    DYNAMICS_FF = "dynamics_ff"
    DYNAMICS_MF = "dynamics_mf"
    DYNAMICS_FP = "dynamics_fp"
    DYNAMICS_SF = "dynamics_sf"
    DYNAMICS_SFZ = "dynamics_sfz"
    DYNAMICS_FZ = "dynamics_fz"
    WEDGE_SET = "wedge_set"
    CRESCENDO = "crescendo"
    DIMINUENDO = "diminuendo"

    # Articulations and ornaments
    ACCENT = "accent"
    STRONG_ACCENT = "strong_accent"
    STACCATO = "staccato"
    STACCATISSIMO = "staccatissimo"
    TENUTO = "tenuto"
    FERMATA = "fermata"
    FERMATA_BELOW = "fermata_below"

    # Markers
    PEDAL_MARK = "pedal_mark"
    PEDAL_UP_MARK = "pedal_up_mark"
    TUPLET_THREE = "tuplet_three"
    TUPLET_SIX = "tuplet_six"
    DAL_SEGNO = "dal_segno"
    DA_CAPO = "da_capo"
    SEGNO = "segno"
    CODA = "coda"
    BREATH_MARK = "breath_mark"

    # Miscellaneous
    BRACKET = "bracket"
    BRACE = "brace"
    TEXT = "text"
    CHARACTER = "character"


# ---------------------------------------------------------------------------
# Named shape families
# ---------------------------------------------------------------------------

CLEFS = frozenset({
    Shape.G_CLEF, Shape.G_CLEF_SMALL, Shape.G_CLEF_8VA, Shape.G_CLEF_8VB,
    Shape.C_CLEF, Shape.F_CLEF, Shape.F_CLEF_SMALL, Shape.F_CLEF_8VA,
    Shape.F_CLEF_8VB, Shape.PERCUSSION_CLEF,
})

SMALL_CLEFS = frozenset({Shape.G_CLEF_SMALL, Shape.F_CLEF_SMALL})

WHOLE_TIMES = frozenset({
    Shape.COMMON_TIME, Shape.CUT_TIME, Shape.TIME_TWO_FOUR,
    Shape.TIME_THREE_FOUR, Shape.TIME_FOUR_FOUR, Shape.TIME_SIX_EIGHT,
})

PARTIAL_TIMES = frozenset({
    Shape.TIME_TWO, Shape.TIME_THREE, Shape.TIME_FOUR, Shape.TIME_SIX,
    Shape.TIME_EIGHT, Shape.TIME_TWELVE,
})

DYNAMICS = frozenset({
    Shape.DYNAMICS_P, Shape.DYNAMICS_PP, Shape.DYNAMICS_MP, Shape.DYNAMICS_F,
    Shape.DYNAMICS_FF, Shape.DYNAMICS_MF, Shape.DYNAMICS_FP, Shape.DYNAMICS_SF,
    Shape.DYNAMICS_SFZ, Shape.DYNAMICS_FZ,
})

FERMATAS = frozenset({Shape.FERMATA, Shape.FERMATA_BELOW})

NOTES = frozenset({
    Shape.NOTEHEAD_BLACK, Shape.NOTEHEAD_VOID, Shape.WHOLE_NOTE, Shape.BREVE,
})

RESTS = frozenset({
    Shape.LONG_REST, Shape.BREVE_REST, Shape.MULTI_REST, Shape.HW_REST_SET,
    Shape.WHOLE_REST, Shape.HALF_REST, Shape.QUARTER_REST, Shape.EIGHTH_REST,
    Shape.SIXTEENTH_REST,
})

ARTICULATIONS = frozenset({
    Shape.ACCENT, Shape.STRONG_ACCENT, Shape.STACCATO, Shape.STACCATISSIMO,
    Shape.TENUTO,
})

PEDALS = frozenset({Shape.PEDAL_MARK, Shape.PEDAL_UP_MARK})

TUPLETS = frozenset({Shape.TUPLET_THREE, Shape.TUPLET_SIX})

SYSTEM_TOP_MARKERS = frozenset({
    Shape.DAL_SEGNO, Shape.DA_CAPO, Shape.SEGNO, Shape.CODA, Shape.BREATH_MARK,
})

# Shapes the head builder looks for, on a line (even pitch step) or between
# lines (odd pitch step)
EVEN_HEADS = (Shape.VOID_EVEN, Shape.WHOLE_EVEN)
ODD_HEADS = (Shape.VOID_ODD, Shape.WHOLE_ODD)

# Trusted shapes whose footprint blocks head candidates
COMPETING_SHAPES = frozenset({Shape.NOTEHEAD_BLACK, Shape.BEAM})

# Physical -> logical mapping of the head templates
HEAD_TEMPLATES = {
    Shape.VOID_EVEN: Shape.NOTEHEAD_VOID,
    Shape.VOID_ODD: Shape.NOTEHEAD_VOID,
    Shape.WHOLE_EVEN: Shape.WHOLE_NOTE,
    Shape.WHOLE_ODD: Shape.WHOLE_NOTE,
}

# Ambiguous physical shapes and the logical shapes they may resolve to
PHYSICAL_SETS = {
    Shape.HW_REST_SET: (Shape.HALF_REST, Shape.WHOLE_REST),
    Shape.WEDGE_SET: (Shape.CRESCENDO, Shape.DIMINUENDO),
}

# Shapes only reachable through a physical -> logical remap, or internal to
# the head builder; the classifier never emits them
_NOT_CLASSIFIED = (
    frozenset(HEAD_TEMPLATES)
    | frozenset(logical for family in PHYSICAL_SETS.values() for logical in family)
    | {Shape.NOTEHEAD_VOID, Shape.WHOLE_NOTE, Shape.VERTICAL_SEED}
)

CLASSIFIER_SHAPES = frozenset(shape for shape in Shape if shape not in _NOT_CLASSIFIED)


def head_shape_of(template_shape):
    """Logical head shape for a head template shape.

    Raises:
        ShapeCatalogError: if ``template_shape`` is not a head template.
    """
    try:
        return HEAD_TEMPLATES[template_shape]
    except KeyError:
        raise ShapeCatalogError(f"No logical head shape for {template_shape}") from None
