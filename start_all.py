# start_all.py
import subprocess
import sys
import time
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent
PYTHON = sys.executable  # nutzt das Python aus der aktiven venv

processes = []

def start(name, args):
    print(f"Starte {name}: {' '.join(args)}")
    p = subprocess.Popen(args, cwd=BASE_DIR)
    processes.append((name, p))
    return p

def main():
    # Ingest-Sink
    start("sink", [PYTHON, "-m", "uvicorn", "backend.main:app", "--port", "8000"])
    time.sleep(2)  # uvicorn hochfahren lassen

    # Demo-Session gegen den Sink
    demo = start("demo", [PYTHON, "demo.py"])

    print("Sink läuft. Strg+C zum Beenden.")
    try:
        demo.wait()
        for name, p in processes:
            p.wait()
    except KeyboardInterrupt:
        print("Beende Prozesse...")
        for name, p in processes:
            p.terminate()

if __name__ == "__main__":
    main()
