"""Download, cache and extract Maven distributions for build tooling."""
