"""Client-side ad rotation: state machine, timer host, preloading and polling."""
