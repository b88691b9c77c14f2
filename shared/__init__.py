# shared package
