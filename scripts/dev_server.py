"""
开发模式专用：监控源码与设置文件变更，自动重启后端服务。
用法: python scripts/dev_server.py [port]

注意：服务端每次补丁都会重写 .liveedit.config.json，
这些文件的变更由广播通道负责，不能触发重启。
"""

import os
import signal
import subprocess
import sys
import threading

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

# 项目根目录
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# 监控的目录（递归）
WATCH_DIRS = [
    os.path.join(PROJECT_ROOT, "liveedit"),
    os.path.join(PROJECT_ROOT, "config"),
]

# 根目录下需要监控的文件
WATCH_ROOT_FILES = {"main.py", "liveedit.yaml"}

WATCH_EXTENSIONS = {".py", ".yaml", ".yml"}

# 运行时数据，由服务自身写入
IGNORED_NAMES = {".liveedit.config.json", ".liveedit.config.default.json"}

# 最后一次变更后等待多久再重启（秒），合并编辑器的连续保存
DEBOUNCE = 0.8


class BackendProcess:
    """管理后端子进程的生命周期。"""

    def __init__(self, port: int):
        self.port = port
        self.process: subprocess.Popen | None = None

    def start(self):
        print(f"\n🚀 启动 Live-Edit 后端 (port={self.port})...")
        env = os.environ.copy()
        env["PYTHONPATH"] = PROJECT_ROOT
        env.setdefault("LIVEEDIT_ROOT", PROJECT_ROOT)
        self.process = subprocess.Popen(
            [sys.executable, "main.py", str(self.port)],
            cwd=PROJECT_ROOT,
            env=env,
        )
        print(f"✅ 后端已启动 (PID: {self.process.pid})")

    def stop(self):
        if self.process and self.process.poll() is None:
            print(f"🛑 停止后端 (PID: {self.process.pid})...")
            # 发送 SIGTERM 让 uvicorn 优雅退出，WebSocket 客户端会在重连后重新拉取文档
            self.process.send_signal(signal.SIGTERM)
            try:
                self.process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                print("⚠️  强制终止...")
                self.process.kill()
                self.process.wait()
            print("✅ 后端已停止")

    def restart(self):
        self.stop()
        self.start()


def should_trigger(path: str) -> bool:
    name = os.path.basename(path)
    if name in IGNORED_NAMES or name.endswith(".tmp"):
        return False
    if "__pycache__" in path:
        return False
    if os.path.dirname(os.path.abspath(path)) == PROJECT_ROOT:
        return name in WATCH_ROOT_FILES
    return os.path.splitext(name)[1] in WATCH_EXTENSIONS


class HotReloadHandler(FileSystemEventHandler):
    """文件变更事件处理：防抖后重启后端。"""

    def __init__(self, backend: BackendProcess):
        self.backend = backend
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()

    def _schedule_restart(self, rel_path: str):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            print(f"🔄 检测到变更: {rel_path}")
            self._timer = threading.Timer(DEBOUNCE, self.backend.restart)
            self._timer.daemon = True
            self._timer.start()

    def on_modified(self, event):
        if event.is_directory or not should_trigger(event.src_path):
            return
        self._schedule_restart(os.path.relpath(event.src_path, PROJECT_ROOT))

    def on_created(self, event):
        self.on_modified(event)


def main():
    port = int(sys.argv[1]) if len(sys.argv) > 1 else 8400

    backend = BackendProcess(port)
    backend.start()

    handler = HotReloadHandler(backend)
    observer = Observer()

    for watch_dir in WATCH_DIRS:
        if os.path.isdir(watch_dir):
            observer.schedule(handler, watch_dir, recursive=True)
            print(f"👁️  监控目录: {os.path.relpath(watch_dir, PROJECT_ROOT)}/")

    observer.schedule(handler, PROJECT_ROOT, recursive=False)
    print(f"👁️  监控文件: {', '.join(sorted(WATCH_ROOT_FILES))}")

    observer.start()
    print(f"\n🔥 开发模式已启动，源码变更将自动重启后端")
    print(f"   后端地址: http://localhost:{port}")
    print(f"   按 Ctrl+C 退出\n")

    stop = threading.Event()
    try:
        while not stop.wait(1):
            pass
    except KeyboardInterrupt:
        print("\n👋 正在退出...")
        observer.stop()
        backend.stop()

    observer.join()
    print("✅ 开发服务已完全停止")


if __name__ == "__main__":
    main()
