# Compared case-insensitively against the file suffix, without the dot.
SOURCE_EXTENSIONS = frozenset({"cs", "js", "ts", "shader", "cginc", "hlsl"})


def is_source_file(file_name: str) -> bool:
    _, dot, extension = file_name.rpartition(".")
    return bool(dot) and extension.lower() in SOURCE_EXTENSIONS
