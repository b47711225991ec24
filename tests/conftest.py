import numpy as np
import pytest


@pytest.fixture
def noisy_rgba():
    """16x16 opaque image: four 8x8 quadrants of jittered base colours."""
    rng = np.random.default_rng(1234)
    bases = [(200, 40, 40), (40, 200, 40), (40, 40, 200), (220, 220, 60)]
    img = np.zeros((16, 16, 4), dtype=np.uint8)
    for i, base in enumerate(bases):
        ty, tx = divmod(i, 2)
        noise = rng.integers(-30, 31, size=(8, 8, 3))
        block = np.clip(np.asarray(base) + noise, 0, 255)
        img[ty * 8 : ty * 8 + 8, tx * 8 : tx * 8 + 8, :3] = block
    img[..., 3] = 255
    return img
