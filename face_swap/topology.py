"""
Static face mesh topology.

The triangle table is read once from MediaPipe's canonical face
tessellation. MediaPipe publishes it as a connection list in which every
face appears as three consecutive directed edges (a, b), (b, c), (c, a).
NO rendering here - just immutable index data.
"""

from typing import Iterable, List, Tuple

import numpy as np
import mediapipe as mp

# Landmarks covered by the tessellation (iris points 468-477 are excluded)
NUM_LANDMARKS = 468

# Faces of the canonical mesh
NUM_TRIANGLES = 852


def triangles_from_connections(
        connections: Iterable[Tuple[int, int]]) -> Tuple[Tuple[int, int, int], ...]:
    """
    Recover triangles from a face connection list.

    Args:
        connections: (start, end) pairs, three per face, in face order

    Returns:
        Tuple of (a, b, c) triples in the list's winding order

    Raises:
        ValueError: If the list is not made of closed edge triples
    """
    edges = list(connections)
    if len(edges) % 3:
        raise ValueError(f"Connection list length {len(edges)} is not a multiple of 3")

    triangles: List[Tuple[int, int, int]] = []
    for i in range(0, len(edges), 3):
        (a, b), (b2, c), (c2, a2) = edges[i:i + 3]
        if b != b2 or c != c2 or a != a2:
            raise ValueError(f"Connections {i}-{i + 2} do not close a triangle")
        triangles.append((a, b, c))

    return tuple(triangles)


def tessellation_connections() -> List[Tuple[int, int]]:
    connections = mp.tasks.vision.FaceLandmarksConnections.FACE_LANDMARKS_TESSELATION
    return [(int(c.start), int(c.end)) for c in connections]


TRIANGULATION: Tuple[Tuple[int, int, int], ...] = triangles_from_connections(
    tessellation_connections()
)


def flat_indices(triangulation=TRIANGULATION) -> np.ndarray:
    """
    Flatten a triangle table into one landmark index per triangle corner.

    Returns:
        Read-only int32 array of length 3 * len(triangulation)
    """
    indices = np.asarray(triangulation, dtype=np.int32).reshape(-1)
    indices.setflags(write=False)
    return indices
