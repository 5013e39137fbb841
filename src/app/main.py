import logging
import threading
import tkinter as tk
from tkinter import ttk, filedialog, messagebox
from tkinter.scrolledtext import ScrolledText

from framecount.config import Settings
from framecount.errors import AnalyzeError
from framecount.service import AnalyzeService
from framecount.worker_pool import executor_from_settings

logger = logging.getLogger(__name__)


class FrameCounterGUI(tk.Tk):
    def __init__(self, service: AnalyzeService):
        super().__init__()
        self.service = service
        self.title("MP3 Frame Counter")
        self.geometry("760x480")
        self.resizable(True, True)

        self.mp3_path_var = tk.StringVar()
        self._build()

    def _build(self):
        f = ttk.Frame(self)
        f.pack(fill=tk.BOTH, expand=True)
        pad = {"padx": 8, "pady": 6}

        ttk.Label(f, text="MP3 file:").grid(row=0, column=0, sticky="w", **pad)
        ttk.Entry(f, textvariable=self.mp3_path_var, width=70).grid(row=0, column=1, **pad)
        ttk.Button(f, text="Browse...", command=self._pick_mp3).grid(row=0, column=2, **pad)

        self.analyze_btn = ttk.Button(f, text="Count Frames", command=self._analyze)
        self.analyze_btn.grid(row=1, column=1, sticky="w", **pad)

        ttk.Label(f, text="Log / Info:").grid(row=2, column=0, sticky="nw", **pad)
        self.log = ScrolledText(f, height=16, wrap="word")
        self.log.grid(row=2, column=1, columnspan=2, sticky="nsew", **pad)
        f.rowconfigure(2, weight=1); f.columnconfigure(1, weight=1)

    def _pick_mp3(self):
        p = filedialog.askopenfilename(title="Select MP3", filetypes=[("MP3 files", "*.mp3"), ("All files", "*.*")])
        if p: self.mp3_path_var.set(p)

    def _append_log(self, txt: str):
        self.log.insert(tk.END, txt + "\n"); self.log.see(tk.END)

    def _analyze(self):
        path = self.mp3_path_var.get().strip()
        if not path:
            messagebox.showwarning("Missing", "Please choose an MP3 file."); return

        self._append_log(f"Counting frames in {path}...")
        self.analyze_btn.state(["disabled"])
        def task():
            try:
                result = self.service.analyze_file(path)
                self.after(0, lambda: self._append_log(f"{result.file_name}: {result.frame_count} frames"))
            except AnalyzeError as e:
                msg = f"{e.code}: {e.message}"
                self.after(0, lambda: messagebox.showerror("Analyze", msg))
            except OSError as e:
                msg = str(e)
                self.after(0, lambda: messagebox.showerror("Open file", msg))
            finally:
                self.after(0, lambda: self.analyze_btn.state(["!disabled"]))
        threading.Thread(target=task, daemon=True).start()


def main():
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logger.info("Starting with %s", settings)
    with executor_from_settings(settings) as executor:
        service = AnalyzeService(executor, max_file_size=settings.max_file_size)
        FrameCounterGUI(service).mainloop()


if __name__ == "__main__":
    main()
