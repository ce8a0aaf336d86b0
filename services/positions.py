"""
水印落点生成 - 根据页面尺寸、字体大小和密度(1-5)计算每页的水印位置
"""
import random
from typing import List, Optional

from models import StampPosition

# 两个落点在两个轴上的距离都小于该值时视为重复
DUPLICATE_DISTANCE = 50
# 四角水印距页面边缘的距离
CORNER_INSET = 100
CENTER_SCALE = 1.5
# 密度为5时额外添加的随机水印数量
RANDOM_STAMP_COUNT = 15


def _is_duplicate(positions: List[StampPosition], x: float, y: float) -> bool:
    return any(
        abs(pos.x - x) < DUPLICATE_DISTANCE and abs(pos.y - y) < DUPLICATE_DISTANCE
        for pos in positions
    )


def _append_unique(positions: List[StampPosition], x: float, y: float, size: float):
    if not _is_duplicate(positions, x, y):
        positions.append(StampPosition(x, y, size))


def base_positions(width: float, height: float, font_size: float) -> List[StampPosition]:
    """中心一个放大的水印 + 四个角落的水印，与密度无关"""
    return [
        StampPosition(width / 2, height / 2, font_size * CENTER_SCALE),
        StampPosition(CORNER_INSET, height - CORNER_INSET, font_size),          # 左上角
        StampPosition(width - CORNER_INSET, height - CORNER_INSET, font_size),  # 右上角
        StampPosition(CORNER_INSET, CORNER_INSET, font_size),                   # 左下角
        StampPosition(width - CORNER_INSET, CORNER_INSET, font_size),           # 右下角
    ]


def _add_grid(positions, width, height, font_size, density):
    grid_size = max(2, density * 2)
    spacing_x = width / grid_size
    spacing_y = height / grid_size

    for row in range(grid_size + 1):
        for col in range(grid_size + 1):
            _append_unique(positions, col * spacing_x, row * spacing_y, font_size)


def _add_diagonals(positions, width, height, font_size, density):
    diagonal_count = density * 2
    step_x = width / diagonal_count
    step_y = height / diagonal_count

    # 对角线1 (左下到右上)
    for i in range(diagonal_count + 1):
        _append_unique(positions, step_x * i, step_y * i, font_size)

    # 对角线2 (左上到右下)
    for i in range(diagonal_count + 1):
        _append_unique(positions, step_x * i, height - step_y * i, font_size)


def deterministic_positions(
    width: float,
    height: float,
    font_size: float,
    density: int
) -> List[StampPosition]:
    """生成不含随机层的落点：基础布局、网格(密度>=2)、对角线(密度>=4)"""
    positions = base_positions(width, height, font_size)

    if density >= 2:
        _add_grid(positions, width, height, font_size, density)

    if density >= 4:
        _add_diagonals(positions, width, height, font_size, density)

    return positions


def random_positions(
    width: float,
    height: float,
    font_size: float,
    rng=None,
    count: int = RANDOM_STAMP_COUNT
) -> List[StampPosition]:
    """页面内均匀分布的随机落点，大小在 font_size 的 0.8~1.2 倍之间，不做去重"""
    rng = rng or random
    stamps = []
    for _ in range(count):
        x = rng.random() * width
        y = rng.random() * height
        stamps.append(StampPosition(x, y, font_size * (0.8 + rng.random() * 0.4)))
    return stamps


def generate_positions(
    width: float,
    height: float,
    font_size: float,
    density: int,
    rng: Optional[random.Random] = None
) -> List[StampPosition]:
    """
    根据密度生成水印位置

    Args:
        width: 页面宽度
        height: 页面高度
        font_size: 基础字体大小
        density: 水印密度 (1-5)
        rng: 随机数来源，只在密度为5时使用；需要提供 random() 方法

    Returns:
        按生成顺序排列的水印位置列表
    """
    positions = deterministic_positions(width, height, font_size, density)

    if density == 5:
        positions.extend(random_positions(width, height, font_size, rng))

    return positions
