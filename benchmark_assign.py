import time

import numpy as np

from ciq.kmeans import Context, assign_clusters, init_centroids

# ---- Configuration ----
N_ITERATIONS = 10
HEIGHT = 1000
WIDTH = 1000
NUM_COLORS = 256
SEED = 1234


def run_benchmark():
    rng = np.random.default_rng(SEED)

    print(f"--- Starting Benchmark for assign_clusters ---")
    print(f"Number of iterations: {N_ITERATIONS}")
    print(f"Image dimensions: {WIDTH}x{HEIGHT} ({HEIGHT*WIDTH} samples), K={NUM_COLORS}")
    print("Generating random image and seeding centroids...")

    pixels = rng.integers(0, 256, size=(HEIGHT, WIDTH, 3), dtype=np.uint8)
    ctx = Context.create(WIDTH, HEIGHT, pixels, NUM_COLORS)
    init_centroids(ctx, rng)

    durations = []
    for i in range(N_ITERATIONS):
        start_time = time.perf_counter()
        assign_clusters(ctx)
        duration = time.perf_counter() - start_time
        durations.append(duration)
        print(f"  Iteration {i+1}/{N_ITERATIONS} done. Time: {duration:.4f}s")

    total_time = sum(durations)
    avg_time = total_time / N_ITERATIONS
    throughput = (HEIGHT * WIDTH * NUM_COLORS) / avg_time if avg_time > 0 else float('inf')

    print("\n--- Benchmark Results Summary ---")
    print(f"Total iterations: {N_ITERATIONS}")
    print(f"Total time: {total_time:.4f} seconds")
    print(f"Average time per call: {avg_time:.4f} seconds ({avg_time*1000:.1f} ms)")
    print(f"Min time per call: {min(durations):.4f} seconds")
    print(f"Max time per call: {max(durations):.4f} seconds")
    print(f"Throughput: {throughput / 1e6:.1f}M distance evaluations/second")


if __name__ == "__main__":
    run_benchmark()
