"""Prompt wording for image composition.

The positional reference legend ("first image is the environment, later
images are characters") is product logic of the scene + cast model and is
reproduced verbatim.
"""

from __future__ import annotations

from cinegen.schemas.generation import AssetRole, ReferenceAsset

# Grid layout per image count (index = count).
GRID_LAYOUTS = ["1", "1x1", "1x2", "1x3", "2x2", "2x3", "2x3", "3x3", "3x3", "3x3"]

STYLE_MAPPING: dict[str, str] = {
    "仙侠古装": "nostalgic",
    "可爱卡通": "comic",
    "古典水墨": "nostalgic",
    "赛博朋克": "anime",
    "未来机甲": "anime",
    "二次元": "anime",
    "真人写实": "selfie",
    "蜡笔画风格": "comic",
    "现代城市风": "news",
}

LEGEND_HEADER = "参考图说明："

REFERENCE_PREAMBLE_EN = """
Reference Images Information:
- The FIRST image provided is the Scene/Environment reference.
- Any subsequent images are Character references (e.g. Base Look, or specific Variation).

Task:
Generate a cinematic shot matching this prompt: "{prompt}".

Requirements:
- STRICTLY maintain the visual style, lighting, and environment from the scene reference.
- If characters are present, they MUST resemble the character reference images provided.
"""


def map_style_to_english(style: str) -> str:
    """English style tag for a Chinese style name; unknown names pass through."""
    return STYLE_MAPPING.get(style, style)


def grid_layout(count: int) -> str:
    if count < 1:
        return GRID_LAYOUTS[1]
    return GRID_LAYOUTS[min(count, len(GRID_LAYOUTS) - 1)]


def grid_shape(count: int) -> tuple[int, int]:
    """(rows, cols) for an N-up grid."""
    layout = grid_layout(count)
    if "x" not in layout:
        return 1, 1
    rows, cols = layout.split("x")
    return int(rows), int(cols)


def reference_legend(references: list[ReferenceAsset] | tuple[ReferenceAsset, ...]) -> str:
    """One line per positional slot, numbered by actual position."""
    lines = []
    for position, ref in enumerate(references, start=1):
        if ref.role is AssetRole.ENVIRONMENT:
            lines.append(f"第{position}张图是镜头布景、环境。")
        elif ref.role is AssetRole.CHARACTER:
            lines.append(f"第{position}张图是角色：{ref.label or ''}")
    return "\n".join(lines)


def with_reference_legend(prompt: str, references) -> str:
    legend = reference_legend(references)
    return f"{prompt}{LEGEND_HEADER}{legend}" if legend else prompt


def styled_prompt(prompt: str, style: str, count: int = 1, aspect_ratio: str = "16:9") -> str:
    """Style prefix plus, for count > 1, the N-up grid instruction."""
    text = f"请使用 {style} 风格创作图画，内容为{prompt}"
    if count > 1:
        text += (
            f" 生成连续 {count} 宫格，包含 {count} 张风格统一的图片，"
            f"每张长宽比 {aspect_ratio}，间距 1px，白色背景，铺满整张图。"
        )
    return text


def join_images_prompt(count: int, size: str) -> str:
    return f"请将这些图片拼成一张{count}宫格图片，图片直接留有1个像素的间隔，最终图片大小为{size}。"


def english_reference_prompt(prompt: str) -> str:
    return REFERENCE_PREAMBLE_EN.format(prompt=prompt)
