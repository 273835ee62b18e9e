# Shared utilities: configuration, normalization and file reading
