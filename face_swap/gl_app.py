"""
OpenGL + GLFW application for live face swapping.

Wires the pipeline together:
- Camera frames and landmark estimates drive the frame loop
- The textured face mesh is rendered offscreen and composited over video
- The composite is shown in the window and can be recorded

Controls:
- Drop an image file on the window to use it as the source face
- [R] Start/stop recording
- [ESC] Exit
"""

import asyncio
import ctypes
import logging
from pathlib import Path
from typing import Optional

import numpy as np
import cv2
import glfw
from OpenGL.GL import *
from OpenGL.GL import shaders as gl_shaders

from .binder import FaceTextureBinder
from .compositor import Compositor, Surface
from .config import FaceSwapConfig
from .errors import AcquisitionFailure, BindingFailure
from .face_tracker import FaceTracker, ensure_model
from .loop import FrameLoop
from .mesh import FaceMesh
from .recorder import RecorderSink
from .renderer import MeshRenderer
from .video_source import VideoSource

logger = logging.getLogger(__name__)


BG_VERT_SRC = """
#version 150 core
in vec2 position;
in vec2 texCoord;
out vec2 fragTexCoord;
void main() {
    fragTexCoord = texCoord;
    gl_Position = vec4(position, 0.0, 1.0);
}
"""

BG_FRAG_SRC = """
#version 150 core
in vec2 fragTexCoord;
out vec4 outColor;
uniform sampler2D bgTexture;
void main() {
    outColor = texture(bgTexture, fragTexCoord);
}
"""


class FaceSwapApp:
    """
    Main face swap application using OpenGL + GLFW.

    Owns every pipeline resource and passes them explicitly to the stages.
    """

    WINDOW_TITLE = "Face Swap - drop a face image, [R] record, [ESC] exit"

    def __init__(self, config: Optional[FaceSwapConfig] = None):
        self.config = config or FaceSwapConfig()
        self.window = None

        self.source = VideoSource(
            camera_index=self.config.camera_index,
            width=self.config.frame_width,
            height=self.config.frame_height,
            fps=self.config.camera_fps,
        )
        self.face_tracker: Optional[FaceTracker] = None
        self.mesh = FaceMesh()
        self.renderer = MeshRenderer(self.mesh)
        self.surface = Surface()
        self.compositor = Compositor(self.surface, self.renderer)
        self.recorder = RecorderSink(self.config, on_output=self._on_recording_saved)
        self.binder: Optional[FaceTextureBinder] = None
        self.frame_loop: Optional[FrameLoop] = None

        # Presentation resources
        self.bg_shader_program = None
        self.bg_texture = None
        self.bg_vao = None
        self.bg_vbo = None

        self.running = False
        self._bind_task: Optional[asyncio.Task] = None
        self._tasks = set()
        self._last_title_update = 0.0

    def _init_glfw(self):
        """Initialize GLFW and create window."""
        if not glfw.init():
            raise RuntimeError("Failed to initialize GLFW")

        # Request OpenGL 3.2 Core Profile
        glfw.window_hint(glfw.CONTEXT_VERSION_MAJOR, 3)
        glfw.window_hint(glfw.CONTEXT_VERSION_MINOR, 2)
        glfw.window_hint(glfw.OPENGL_PROFILE, glfw.OPENGL_CORE_PROFILE)
        glfw.window_hint(glfw.OPENGL_FORWARD_COMPAT, GL_TRUE)

        self.window = glfw.create_window(
            self.config.frame_width, self.config.frame_height,
            self.WINDOW_TITLE, None, None
        )
        if not self.window:
            glfw.terminate()
            raise RuntimeError("Failed to create GLFW window")

        glfw.make_context_current(self.window)
        glfw.swap_interval(1)  # VSync

        glfw.set_key_callback(self.window, self._key_callback)
        glfw.set_drop_callback(self.window, self._drop_callback)

    def _spawn(self, coro):
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _key_callback(self, window, key, scancode, action, mods):
        """Handle key events."""
        if action != glfw.PRESS:
            return
        if key == glfw.KEY_ESCAPE:
            self.running = False
        elif key == glfw.KEY_R:
            self._spawn(self.toggle_recording())

    def _drop_callback(self, window, paths):
        """Use the first dropped file as the new source face."""
        if paths:
            self.request_bind(Path(paths[0]))

    def request_bind(self, path: Path):
        """Bind a source face file in the background."""
        if self._bind_task is not None and not self._bind_task.done():
            logger.warning("Still binding the previous face; ignoring %s", path)
            return
        self._bind_task = self._spawn(self._bind(path))

    async def _bind(self, path: Path):
        logger.info("Binding source face %s", path)
        try:
            await self.binder.bind_file(path)
        except BindingFailure as e:
            logger.warning("No face found in %s: %s", path, e)
        except AcquisitionFailure as e:
            logger.error("Cannot use %s as source face: %s", path, e)

    async def toggle_recording(self):
        if self.recorder.recording:
            await self.recorder.stop()
        else:
            await self.recorder.start(self.surface)

    def _on_recording_saved(self, path: Path):
        logger.info("Recording ready for download: %s", path.resolve())

    def _init_presentation(self):
        """Compile the background shader and the fullscreen quad."""
        bg_vert = gl_shaders.compileShader(BG_VERT_SRC, GL_VERTEX_SHADER)
        bg_frag = gl_shaders.compileShader(BG_FRAG_SRC, GL_FRAGMENT_SHADER)
        self.bg_shader_program = gl_shaders.compileProgram(bg_vert, bg_frag)

        # Background quad (fullscreen)
        bg_data = np.array([
            # position   texcoord
            -1.0, -1.0,  0.0, 1.0,
             1.0, -1.0,  1.0, 1.0,
             1.0,  1.0,  1.0, 0.0,
            -1.0, -1.0,  0.0, 1.0,
             1.0,  1.0,  1.0, 0.0,
            -1.0,  1.0,  0.0, 0.0,
        ], dtype=np.float32)

        self.bg_vao = glGenVertexArrays(1)
        glBindVertexArray(self.bg_vao)

        self.bg_vbo = glGenBuffers(1)
        glBindBuffer(GL_ARRAY_BUFFER, self.bg_vbo)
        glBufferData(GL_ARRAY_BUFFER, bg_data.nbytes, bg_data, GL_STATIC_DRAW)

        bg_pos_loc = glGetAttribLocation(self.bg_shader_program, "position")
        bg_tex_loc = glGetAttribLocation(self.bg_shader_program, "texCoord")

        glEnableVertexAttribArray(bg_pos_loc)
        glVertexAttribPointer(bg_pos_loc, 2, GL_FLOAT, GL_FALSE, 16, ctypes.c_void_p(0))

        glEnableVertexAttribArray(bg_tex_loc)
        glVertexAttribPointer(bg_tex_loc, 2, GL_FLOAT, GL_FALSE, 16, ctypes.c_void_p(8))

        glBindVertexArray(0)

        self.bg_texture = glGenTextures(1)
        glBindTexture(GL_TEXTURE_2D, self.bg_texture)
        glTexParameteri(GL_TEXTURE_2D, GL_TEXTURE_MIN_FILTER, GL_LINEAR)
        glTexParameteri(GL_TEXTURE_2D, GL_TEXTURE_MAG_FILTER, GL_LINEAR)
        glTexParameteri(GL_TEXTURE_2D, GL_TEXTURE_WRAP_S, GL_CLAMP_TO_EDGE)
        glTexParameteri(GL_TEXTURE_2D, GL_TEXTURE_WRAP_T, GL_CLAMP_TO_EDGE)

    def present(self, image: np.ndarray):
        """Show a composited image in the window."""
        if self.window is None or self.bg_texture is None:
            return

        # Flip horizontally for a selfie view
        rgb_frame = cv2.cvtColor(cv2.flip(image, 1), cv2.COLOR_BGR2RGB)

        glBindTexture(GL_TEXTURE_2D, self.bg_texture)
        glPixelStorei(GL_UNPACK_ALIGNMENT, 1)
        glTexImage2D(
            GL_TEXTURE_2D, 0, GL_RGB,
            rgb_frame.shape[1], rgb_frame.shape[0],
            0, GL_RGB, GL_UNSIGNED_BYTE, rgb_frame
        )

        fb_width, fb_height = glfw.get_framebuffer_size(self.window)
        glViewport(0, 0, fb_width, fb_height)
        glClear(GL_COLOR_BUFFER_BIT)

        glUseProgram(self.bg_shader_program)
        glActiveTexture(GL_TEXTURE0)
        glBindTexture(GL_TEXTURE_2D, self.bg_texture)
        glUniform1i(glGetUniformLocation(self.bg_shader_program, "bgTexture"), 0)

        glBindVertexArray(self.bg_vao)
        glDrawArrays(GL_TRIANGLES, 0, 6)
        glBindVertexArray(0)

        glfw.swap_buffers(self.window)
        self._update_title()

    def _update_title(self):
        now = glfw.get_time()
        if now - self._last_title_update < 1.0:
            return
        self._last_title_update = now
        rec = " | REC" if self.recorder.recording else ""
        fps = self.frame_loop.fps_counter.get_fps() if self.frame_loop else 0.0
        glfw.set_window_title(self.window, f"{self.WINDOW_TITLE} | FPS: {fps:.1f}{rec}")

    async def _pump_events(self):
        """Poll window events once per display tick until exit."""
        interval = 1.0 / self.config.refresh_rate
        while (self.running and self.frame_loop.running
               and not glfw.window_should_close(self.window)):
            glfw.poll_events()
            await asyncio.sleep(interval)
        self.running = False

    async def run_async(self, face_path: Optional[Path] = None):
        """Main application loop."""
        self.source.open()
        try:
            self._init_glfw()
            self._init_presentation()
            self.renderer.init_gl()

            loop = asyncio.get_running_loop()
            model_path = await loop.run_in_executor(
                None, ensure_model, self.config.model_path, self.config.model_url
            )
            self.face_tracker = FaceTracker(
                model_path,
                min_detection_confidence=self.config.min_detection_confidence,
            )
            self.binder = FaceTextureBinder(self.face_tracker, self.mesh, self.config)

            self.frame_loop = FrameLoop(
                self.source, self.face_tracker, self.mesh,
                self.renderer, self.compositor,
                present=self.present,
                fov=self.config.fov,
                near=self.config.near,
                refresh_rate=self.config.refresh_rate,
            )

            if face_path is not None:
                self.request_bind(Path(face_path))

            self.running = True
            self.frame_loop.start()
            logger.info("Face swap started. Drop a face image on the window; "
                        "[R] record, [ESC] exit")

            await self._pump_events()
        finally:
            await self._shutdown()

    async def _shutdown(self):
        """Release all resources."""
        self.running = False
        error = None

        if self.frame_loop is not None:
            self.frame_loop.stop()
            try:
                await self.frame_loop.wait_closed()
            except Exception as e:
                error = e

        await self.recorder.stop()

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        if self.face_tracker is not None:
            self.face_tracker.release()
        self.source.release()
        self.surface.release()

        if self.window is not None:
            self.renderer.release()
            if self.bg_shader_program:
                glDeleteProgram(self.bg_shader_program)
            if self.bg_vao:
                glDeleteVertexArrays(1, [self.bg_vao])
            if self.bg_vbo:
                glDeleteBuffers(1, [self.bg_vbo])
            if self.bg_texture:
                glDeleteTextures(1, [self.bg_texture])
            glfw.terminate()
            self.window = None

        logger.info("Face swap closed.")
        if error is not None:
            raise error


def run_face_swap(config: Optional[FaceSwapConfig] = None, face_path: Optional[Path] = None):
    """
    Entry point to run the face swap.

    Args:
        config: Pipeline settings (defaults if None)
        face_path: Optional source face image bound at startup
    """
    app = FaceSwapApp(config)
    asyncio.run(app.run_async(face_path))
