"""
ZPL label composition for stored inventory items.

Produces the command stream for one adhesive label on a thermal printer:
item name in large type at the top, the quantity below it, bin and
location in small type at the bottom, and optionally the date and a QR
code pointing at the item. Every text field has its own box and is cut
to fit with a truncation marker instead of overflowing.

The output is a pure function of the item, the container and location
names and the layout, so the same inputs always give identical bytes.
A PNG preview of the same layout can be rendered with Pillow.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .models import Item, LabelPayload

if TYPE_CHECKING:
    from PIL import Image as PILImage

    from .config import Config

TRUNCATION_MARKER = "..."

# Characters with a meaning in ZPL field data, written as ^FH hex escapes.
# The escape indicator itself must go first.
_ZPL_ESCAPES = [("_", "_5F"), ("^", "_5E"), ("~", "_7E")]

FONT_PATHS = [
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/TTF/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
    "/System/Library/Fonts/Helvetica.ttc",
    "C:\\Windows\\Fonts\\arialbd.ttf",
]


@dataclass(frozen=True)
class FieldBox:
    """Position and font of one single-line text field, in dots."""
    x: int
    y: int
    width: int
    font_height: int
    font_width: int

    @property
    def max_chars(self) -> int:
        """Number of characters that fit in the box."""
        return self.width // self.font_width

    @property
    def bottom(self) -> int:
        return self.y + self.font_height


@dataclass(frozen=True)
class LabelLayout:
    """Fixed label geometry in printer dots.

    The default is a 2" x 1" label at 203 dpi. Field rows are stacked from
    the top with a fixed gap, so every field keeps its position whether or
    not the fields above it are printed.
    """
    width: int = 406
    height: int = 203
    margin: int = 16
    gap: int = 8
    name_font: tuple[int, int] = (40, 24)
    quantity_font: tuple[int, int] = (30, 18)
    detail_font: tuple[int, int] = (24, 14)
    date_font: tuple[int, int] = (20, 12)
    show_date: bool = True
    qr_base_url: str | None = None
    qr_magnification: int = 4
    qr_size: int = 120
    truncation_marker: str = TRUNCATION_MARKER

    def __post_init__(self):
        boxes = [self.name_box, self.quantity_box, self.container_box, self.location_box]
        if self.show_date:
            boxes.append(self.date_box)
        for box in boxes:
            if box.bottom > self.height - self.margin:
                raise ValueError(f"Label height {self.height} too small for field at y={box.y}")
            if box.max_chars <= len(self.truncation_marker):
                raise ValueError(f"Label width {self.width} too small for field at y={box.y}")
        if self.qr_base_url and self.margin + self.qr_size > self.height:
            raise ValueError(f"Label height {self.height} too small for a {self.qr_size} dot QR code")

    @classmethod
    def from_config(cls, config: Config) -> LabelLayout:
        return cls(
            width=config.labels_width,
            height=config.labels_height,
            show_date=config.labels_show_date,
            qr_base_url=config.labels_qr_base_url,
        )

    @property
    def text_width(self) -> int:
        """Width available to text, leaving room for the QR code if enabled."""
        width = self.width - 2 * self.margin
        if self.qr_base_url:
            width -= self.qr_size + self.margin
        return width

    def _row(self, index: int) -> int:
        fonts = [self.name_font, self.quantity_font, self.detail_font, self.detail_font]
        return self.margin + sum(font[0] + self.gap for font in fonts[:index])

    def _box(self, index: int, font: tuple[int, int]) -> FieldBox:
        return FieldBox(self.margin, self._row(index), self.text_width, font[0], font[1])

    @property
    def name_box(self) -> FieldBox:
        return self._box(0, self.name_font)

    @property
    def quantity_box(self) -> FieldBox:
        return self._box(1, self.quantity_font)

    @property
    def container_box(self) -> FieldBox:
        return self._box(2, self.detail_font)

    @property
    def location_box(self) -> FieldBox:
        return self._box(3, self.detail_font)

    @property
    def date_box(self) -> FieldBox:
        return self._box(4, self.date_font)

    @property
    def qr_origin(self) -> tuple[int, int]:
        return self.width - self.margin - self.qr_size, self.margin


DEFAULT_LAYOUT = LabelLayout()


def truncate(text: str, max_chars: int, marker: str = TRUNCATION_MARKER) -> str:
    """Cut text to max_chars, ending in the marker when anything was cut.

    Examples:
        >>> truncate("hammer", 10)
        'hammer'
        >>> truncate("adjustable wrench set", 10)
        'adjusta...'
    """
    if len(text) <= max_chars:
        return text
    return text[: max_chars - len(marker)] + marker


def escape_field(text: str) -> str:
    """Escape ZPL control characters for use after ^FH."""
    for char, replacement in _ZPL_ESCAPES:
        text = text.replace(char, replacement)
    return text


def _single_line(text: str) -> str:
    return " ".join(text.split())


def qr_url(item: Item, layout: LabelLayout) -> str | None:
    """URL encoded in the QR code, or None when the label has no QR code."""
    if not layout.qr_base_url or item.id is None:
        return None
    return f"{layout.qr_base_url}#{item.id}"


def label_fields(
    item: Item,
    container_name: str | None = None,
    location_name: str | None = None,
    layout: LabelLayout = DEFAULT_LAYOUT,
) -> list[tuple[FieldBox, str]]:
    """Return the (box, visible text) pairs of a label, already truncated."""
    fields = [
        (layout.name_box, _single_line(item.name)),
        (layout.quantity_box, f"Qty: {item.quantity}"),
    ]
    if container_name:
        fields.append((layout.container_box, f"Bin: {_single_line(container_name)}"))
    if location_name:
        fields.append((layout.location_box, f"Loc: {_single_line(location_name)}"))
    if layout.show_date:
        fields.append((layout.date_box, item.created_at.date().isoformat()))
    return [
        (box, truncate(text, box.max_chars, layout.truncation_marker))
        for box, text in fields
    ]


def compose(
    item: Item,
    container_name: str | None = None,
    location_name: str | None = None,
    layout: LabelLayout = DEFAULT_LAYOUT,
) -> LabelPayload:
    """Compose the ZPL command stream for one item's label.

    Text fields are truncated to their box in visible characters, before
    ^FH escaping. An escaped field (``_`` becomes ``_5F``) is longer on the
    wire than it is printed, so ``max_chars`` bounds the printed text, not
    the field data in the payload.

    Args:
        item: The stored item.
        container_name: Name of the item's container (bin), if any.
        location_name: Name of the item's location, if any.
        layout: Label geometry.

    Returns:
        ZPL text, one directive group per line, starting with ^XA and
        ending with ^XZ.
    """
    lines = [
        "^XA",
        "^CI28",
        f"^PW{layout.width}",
        f"^LL{layout.height}",
        "^LH0,0",
    ]
    for box, text in label_fields(item, container_name, location_name, layout):
        lines.append(
            f"^FO{box.x},{box.y}^A0N,{box.font_height},{box.font_width}"
            f"^FH^FD{escape_field(text)}^FS"
        )

    url = qr_url(item, layout)
    if url:
        x, y = layout.qr_origin
        lines.append(f"^FO{x},{y}^BQN,2,{layout.qr_magnification}^FH^FDQA,{escape_field(url)}^FS")

    lines.append("^PQ1")
    lines.append("^XZ")
    return "\n".join(lines) + "\n"


def generate_qr(url: str, box_size: int = 4, border: int = 0) -> "PILImage.Image":
    """Generate a QR code image for the given URL."""
    import qrcode

    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(url)
    qr.make(fit=True)
    return qr.make_image(fill_color="black", back_color="white")


def _load_font(size: int):
    """Load a bold TrueType font of the given pixel size, or Pillow's default."""
    from PIL import ImageFont

    for font_path in FONT_PATHS:
        try:
            return ImageFont.truetype(font_path, size)
        except OSError:
            continue
    return ImageFont.load_default()


def render_preview(
    item: Item,
    container_name: str | None = None,
    location_name: str | None = None,
    layout: LabelLayout = DEFAULT_LAYOUT,
) -> "PILImage.Image":
    """Render the label as an image, one pixel per printer dot.

    Meant for checking a label on screen before printing it; uses the
    same fields and truncation as :func:`compose`.
    """
    from PIL import Image, ImageDraw

    img = Image.new("RGB", (layout.width, layout.height), "white")
    draw = ImageDraw.Draw(img)

    for box, text in label_fields(item, container_name, location_name, layout):
        draw.text((box.x, box.y), text, fill="black", font=_load_font(box.font_height))

    url = qr_url(item, layout)
    if url:
        qr_img = generate_qr(url, box_size=layout.qr_magnification)
        qr_img = qr_img.resize((layout.qr_size, layout.qr_size), Image.Resampling.NEAREST)
        img.paste(qr_img, layout.qr_origin)

    return img
