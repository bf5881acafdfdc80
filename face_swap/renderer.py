"""
OpenGL renderer for the textured face mesh.

Draws the mesh through the calibrated camera into an offscreen framebuffer
the size of the video. The compositor reads it back as a BGRA image.

Requirements:
- OpenGL 3.2 Core Profile (context owned by the caller)
- Vertex buffers allocated once, updated in place
- Mirrored texture wrap at the UV border
"""

import ctypes
import logging
from typing import List, Optional

import numpy as np
from OpenGL.GL import *
from OpenGL.GL import shaders as gl_shaders

from .camera import CameraCalibration, mvp_matrix
from .mesh import FaceMesh, TextureBinding

logger = logging.getLogger(__name__)


MESH_VERT_SRC = """
#version 150 core
in vec3 position;
in vec2 texCoord;
uniform mat4 mvp;
out vec2 fragTexCoord;
void main() {
    fragTexCoord = texCoord;
    gl_Position = mvp * vec4(position, 1.0);
}
"""

MESH_FRAG_SRC = """
#version 150 core
in vec2 fragTexCoord;
out vec4 outColor;
uniform sampler2D faceTexture;
void main() {
    outColor = vec4(texture(faceTexture, fragTexCoord).rgb, 1.0);
}
"""


class MeshRenderer:
    """
    Renders FaceMesh to an offscreen surface.

    Holds non-owning references to the mesh; the calibration is set by the
    frame loop whenever the video size changes.
    """

    def __init__(self, mesh: FaceMesh):
        self.mesh = mesh
        self.calibration: Optional[CameraCalibration] = None

        self.program = None
        self.vao = None
        self.position_vbo = None
        self.uv_vbo = None

        self.fbo = None
        self.color_rb = None
        self.depth_rb = None

        self.texture = None
        self._bound: Optional[TextureBinding] = None
        self._pending_release: List[int] = []

        self._positions_version = -1
        self._uvs_version = -1
        self._released = False

    def init_gl(self):
        """Compile shaders and allocate mesh buffers. Needs a current context."""
        vert = gl_shaders.compileShader(MESH_VERT_SRC, GL_VERTEX_SHADER)
        frag = gl_shaders.compileShader(MESH_FRAG_SRC, GL_FRAGMENT_SHADER)
        self.program = gl_shaders.compileProgram(vert, frag)

        self.vao = glGenVertexArrays(1)
        glBindVertexArray(self.vao)

        # Dynamic buffers sized once from the triangulation
        self.position_vbo = glGenBuffers(1)
        glBindBuffer(GL_ARRAY_BUFFER, self.position_vbo)
        glBufferData(GL_ARRAY_BUFFER, self.mesh.positions.nbytes, None, GL_DYNAMIC_DRAW)
        pos_loc = glGetAttribLocation(self.program, "position")
        glEnableVertexAttribArray(pos_loc)
        glVertexAttribPointer(pos_loc, 3, GL_FLOAT, GL_FALSE, 0, ctypes.c_void_p(0))

        self.uv_vbo = glGenBuffers(1)
        glBindBuffer(GL_ARRAY_BUFFER, self.uv_vbo)
        glBufferData(GL_ARRAY_BUFFER, self.mesh.uvs.nbytes, None, GL_DYNAMIC_DRAW)
        tex_loc = glGetAttribLocation(self.program, "texCoord")
        glEnableVertexAttribArray(tex_loc)
        glVertexAttribPointer(tex_loc, 2, GL_FLOAT, GL_FALSE, 0, ctypes.c_void_p(0))

        glBindVertexArray(0)
        glBindBuffer(GL_ARRAY_BUFFER, 0)

    def set_calibration(self, calibration: CameraCalibration):
        """Use a new camera and resize the offscreen surface to match."""
        self.calibration = calibration
        self._delete_framebuffer()

        width, height = calibration.size
        self.fbo = glGenFramebuffers(1)
        glBindFramebuffer(GL_FRAMEBUFFER, self.fbo)

        self.color_rb = glGenRenderbuffers(1)
        glBindRenderbuffer(GL_RENDERBUFFER, self.color_rb)
        glRenderbufferStorage(GL_RENDERBUFFER, GL_RGBA8, width, height)
        glFramebufferRenderbuffer(GL_FRAMEBUFFER, GL_COLOR_ATTACHMENT0,
                                  GL_RENDERBUFFER, self.color_rb)

        self.depth_rb = glGenRenderbuffers(1)
        glBindRenderbuffer(GL_RENDERBUFFER, self.depth_rb)
        glRenderbufferStorage(GL_RENDERBUFFER, GL_DEPTH_COMPONENT24, width, height)
        glFramebufferRenderbuffer(GL_FRAMEBUFFER, GL_DEPTH_ATTACHMENT,
                                  GL_RENDERBUFFER, self.depth_rb)

        status = glCheckFramebufferStatus(GL_FRAMEBUFFER)
        glBindFramebuffer(GL_FRAMEBUFFER, 0)
        glBindRenderbuffer(GL_RENDERBUFFER, 0)
        if status != GL_FRAMEBUFFER_COMPLETE:
            raise RuntimeError(f"Offscreen framebuffer incomplete (status {status:#x})")

        logger.info("Render surface %dx%d, camera distance %.1f",
                    width, height, calibration.distance)

    def _sync_texture(self):
        """Create a GL texture for a newly bound source face."""
        binding = self.mesh.texture
        if binding is None or binding is self._bound:
            return

        if self.texture is not None:
            self._pending_release.append(self.texture)

        image = np.ascontiguousarray(binding.image)
        height, width = image.shape[:2]

        self.texture = glGenTextures(1)
        glBindTexture(GL_TEXTURE_2D, self.texture)
        glTexParameteri(GL_TEXTURE_2D, GL_TEXTURE_MIN_FILTER, GL_LINEAR)
        glTexParameteri(GL_TEXTURE_2D, GL_TEXTURE_MAG_FILTER, GL_LINEAR)
        glTexParameteri(GL_TEXTURE_2D, GL_TEXTURE_WRAP_S, GL_MIRRORED_REPEAT)
        glTexParameteri(GL_TEXTURE_2D, GL_TEXTURE_WRAP_T, GL_MIRRORED_REPEAT)
        glPixelStorei(GL_UNPACK_ALIGNMENT, 1)
        # Rows are uploaded top-down, so v = y / height samples directly
        glTexImage2D(GL_TEXTURE_2D, 0, GL_RGB, width, height, 0,
                     GL_BGR, GL_UNSIGNED_BYTE, image)
        glBindTexture(GL_TEXTURE_2D, 0)

        self._bound = binding

    def _release_pending(self):
        if self._pending_release:
            glDeleteTextures(len(self._pending_release), self._pending_release)
            self._pending_release = []

    def _sync_buffers(self):
        if self.mesh.positions_version != self._positions_version:
            glBindBuffer(GL_ARRAY_BUFFER, self.position_vbo)
            glBufferSubData(GL_ARRAY_BUFFER, 0, self.mesh.positions.nbytes, self.mesh.positions)
            self._positions_version = self.mesh.positions_version

        if self.mesh.uvs_version != self._uvs_version:
            glBindBuffer(GL_ARRAY_BUFFER, self.uv_vbo)
            glBufferSubData(GL_ARRAY_BUFFER, 0, self.mesh.uvs.nbytes, self.mesh.uvs)
            self._uvs_version = self.mesh.uvs_version

        glBindBuffer(GL_ARRAY_BUFFER, 0)

    def render(self):
        """Draw the mesh once into the offscreen surface."""
        if self._released or self.fbo is None or self.calibration is None:
            return

        self._release_pending()
        self._sync_texture()
        self._sync_buffers()

        width, height = self.calibration.size
        glBindFramebuffer(GL_FRAMEBUFFER, self.fbo)
        glViewport(0, 0, width, height)
        glClearColor(0.0, 0.0, 0.0, 0.0)
        glClear(GL_COLOR_BUFFER_BIT | GL_DEPTH_BUFFER_BIT)

        if self.texture is not None:
            glEnable(GL_DEPTH_TEST)
            glDepthFunc(GL_LESS)

            glUseProgram(self.program)
            mvp_loc = glGetUniformLocation(self.program, "mvp")
            glUniformMatrix4fv(mvp_loc, 1, GL_TRUE, mvp_matrix(self.calibration))

            glActiveTexture(GL_TEXTURE0)
            glBindTexture(GL_TEXTURE_2D, self.texture)
            glUniform1i(glGetUniformLocation(self.program, "faceTexture"), 0)

            glBindVertexArray(self.vao)
            glDrawArrays(GL_TRIANGLES, 0, self.mesh.vertex_count)
            glBindVertexArray(0)

            glDisable(GL_DEPTH_TEST)

        glBindFramebuffer(GL_FRAMEBUFFER, 0)

    def read_pixels(self) -> Optional[np.ndarray]:
        """
        Read the offscreen surface back.

        Returns:
            (H, W, 4) uint8 BGRA image, top row first, or None after teardown
        """
        if self._released or self.fbo is None or self.calibration is None:
            return None

        width, height = self.calibration.size
        glBindFramebuffer(GL_FRAMEBUFFER, self.fbo)
        glPixelStorei(GL_PACK_ALIGNMENT, 1)
        data = glReadPixels(0, 0, width, height, GL_BGRA, GL_UNSIGNED_BYTE)
        glBindFramebuffer(GL_FRAMEBUFFER, 0)

        pixels = np.frombuffer(data, dtype=np.uint8).reshape(height, width, 4)
        # GL rows start at the bottom
        return np.flipud(pixels)

    def _delete_framebuffer(self):
        if self.fbo is not None:
            glDeleteFramebuffers(1, [self.fbo])
            self.fbo = None
        if self.color_rb is not None:
            glDeleteRenderbuffers(1, [self.color_rb])
            self.color_rb = None
        if self.depth_rb is not None:
            glDeleteRenderbuffers(1, [self.depth_rb])
            self.depth_rb = None

    def release(self):
        """Release all GL resources. Later calls to render are no-ops."""
        if self._released:
            return
        self._released = True

        if self.texture is not None:
            self._pending_release.append(self.texture)
            self.texture = None
        self._release_pending()
        self._delete_framebuffer()

        if self.position_vbo is not None:
            glDeleteBuffers(2, [self.position_vbo, self.uv_vbo])
        if self.vao is not None:
            glDeleteVertexArrays(1, [self.vao])
        if self.program is not None:
            glDeleteProgram(self.program)
