# api services package
