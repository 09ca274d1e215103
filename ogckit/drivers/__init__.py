"""Driver interfaces with PostGIS and S3 storage for collections, features, jobs, styles and tiles."""